from .step_10_detect_platform import DetectPlatformStep
from .step_20_dependencies import DependenciesStep
from .step_30_stow_configs import StowConfigsStep
from .step_40_external_assets import ExternalAssetsStep
from .step_50_machine_config import MachineConfigStep

__all__ = [
    "DetectPlatformStep",
    "DependenciesStep",
    "StowConfigsStep",
    "ExternalAssetsStep",
    "MachineConfigStep",
]
