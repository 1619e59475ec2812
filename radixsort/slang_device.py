"""slangpy backend: runs ``shaders/radix_sort.slang`` on a real GPU."""

import logging
from pathlib import Path

import numpy as np
import slangpy as spy

from .device import Device, DeviceProperties
from .errors import ConfigurationError
from .policy import MAX_THREAD_GROUPS, HardwareClass, hardware_class_from_env

logger = logging.getLogger(__name__)

SHADER_DIR = Path(__file__).parent / "shaders"
SHADER_MODULE = "radix_sort.slang"
ENTRY_POINTS = ("upsweep", "spine", "downsweep")

BUFFER_USAGE = spy.BufferUsage.shader_resource | spy.BufferUsage.unordered_access

# adapter name fragment -> hardware class, first match wins
ADAPTER_CLASSES = (
    ("rtx", HardwareClass.SM70),
    ("tesla v", HardwareClass.SM70),
    ("a100", HardwareClass.SM70),
    ("h100", HardwareClass.SM70),
    ("gtx", HardwareClass.SM35),
    ("nvidia", HardwareClass.SM35),
)


def hardware_class_for_adapter(adapter_name: str) -> HardwareClass:
    name = adapter_name.lower()
    for fragment, hardware_class in ADAPTER_CLASSES:
        if fragment in name:
            return hardware_class
    return HardwareClass.SM35


class SlangDevice(Device):
    name = "slang"

    def __init__(self, device: spy.Device = None, hardware_class=None, sm_count=None,
                 enable_debug_layers=False):
        if device is None:
            device = spy.Device(enable_debug_layers=enable_debug_layers)
        self.device = device
        if hardware_class is None:
            hardware_class = hardware_class_from_env(hardware_class_for_adapter(device.info.adapter_name))
        elif isinstance(hardware_class, str):
            hardware_class = HardwareClass.from_name(hardware_class)
        if sm_count is None:
            # no portable SM count query; MAX_THREAD_GROUPS is the grid the
            # single-architecture sorter ran with
            sm_count = max(1, MAX_THREAD_GROUPS // 32)
        super().__init__(DeviceProperties(hardware_class=hardware_class, sm_count=sm_count))
        self._kernels = {}
        logger.debug("slang device on %s as %s", device.info.adapter_name, hardware_class.value)

    def check_policy(self, policy):
        super().check_policy(policy)
        if policy.packed_bits != 32:
            raise ConfigurationError("the slang kernels pack digit counters into 32-bit words")

    def kernels(self, policy):
        """Compiled (upsweep, spine, downsweep) kernels for ``policy``, cached."""
        defines = policy.defines()
        cache_key = tuple(sorted(defines.items()))
        kernels = self._kernels.get(cache_key)
        if kernels is None:
            session = self.device.create_slang_session(
                compiler_options={"include_paths": [SHADER_DIR], "defines": defines})
            kernels = {}
            for entry_point in ENTRY_POINTS:
                program = session.load_program(SHADER_MODULE, [entry_point])
                kernels[entry_point] = self.device.create_compute_kernel(program)
            self._kernels[cache_key] = kernels
            logger.debug("compiled %s for %s", SHADER_MODULE, policy.name)
        return kernels

    def create_buffer(self, count=0, dtype=None, data=None, label=""):
        if data is not None:
            data = np.ascontiguousarray(data)
            if data.dtype.itemsize != 4:
                raise ConfigurationError(f"slang kernels move 32-bit words, got {data.dtype}")
            # zero-sized buffers are rejected by the graphics APIs
            if data.size == 0:
                data = np.zeros(1, dtype=data.dtype)
            return self.device.create_buffer(usage=BUFFER_USAGE, data=data.view(np.uint32), label=label)
        if np.dtype(dtype).itemsize != 4:
            raise ConfigurationError(f"slang kernels move 32-bit words, got {np.dtype(dtype)}")
        return self.device.create_buffer(usage=BUFFER_USAGE, data=np.zeros(max(count, 1), dtype=np.uint32),
                                         label=label)

    def read_buffer(self, buffer, dtype, count):
        return buffer.to_numpy().view(np.uint32)[:count].view(dtype).copy()

    def write_buffer(self, buffer, data):
        words = buffer.to_numpy().view(np.uint32).copy()
        data = np.ascontiguousarray(data).view(np.uint32)
        words[:len(data)] = data
        buffer.copy_from_numpy(words)

    def _dispatch(self, args, entry_point, group_count):
        kernel = self.kernels(args.policy)[entry_point]
        command_encoder = self.device.create_command_encoder()
        with command_encoder.begin_compute_pass() as pass_encoder:
            shader_object = pass_encoder.bind_pipeline(kernel.pipeline)
            cursor = spy.ShaderCursor(shader_object)["g_sort"]
            cursor["src_keys"] = args.keys_in
            cursor["dst_keys"] = args.keys_out
            if not args.keys_only:
                cursor["src_values"] = args.values_in
                cursor["dst_values"] = args.values_out
            if args.policy.load_vec_size > 1:
                # vector views of the source buffers for full-tile loads
                cursor["src_key_vectors"] = args.keys_in
                if not args.keys_only:
                    cursor["src_value_vectors"] = args.values_in
            cursor["sum_table"] = args.histogram
            cursor["bin_carry"] = args.bin_carry
            cursor["config"] = args.dispatch.config_data(args.current_bit, args.pass_bits)
            pass_encoder.dispatch_compute([group_count, 1, 1])
        self.device.submit_command_buffer(command_encoder.finish())

    def upsweep(self, args):
        self._dispatch(args, "upsweep", args.dispatch.num_blocks)

    def spine(self, args):
        self._dispatch(args, "spine", 1)

    def digit_totals(self, args):
        self.device.wait_for_idle()
        histogram = args.histogram.to_numpy().view(np.uint32)
        return histogram[:args.policy.radix_bins * args.dispatch.num_blocks].reshape(
            args.policy.radix_bins, -1).sum(axis=1)

    def downsweep(self, args):
        self._dispatch(args, "downsweep", args.dispatch.num_blocks)
        self.device.wait_for_idle()
