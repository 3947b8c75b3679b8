"""
Centralized configuration.

Every field can be overridden with a SNAP_<FIELD_NAME_UPPERCASE> environment
variable; a .env file in the working directory is loaded first.
"""
import os
from dataclasses import dataclass, field, fields
from typing import Optional

from dotenv import load_dotenv


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass
class Config:
    # -- Inference runtime --
    runtime: str = "mock"                  # onnx | mock
    model_source: str = ""                 # path or http(s) URL to an .onnx file
    labels_path: str = ""                  # JSON list or one label per line; empty = built-in
    top_k: int = 3
    input_range: str = "symmetric"         # unit | symmetric | imagenet
    output_activation: str = "none"        # none | softmax
    providers: list[str] = field(
        default_factory=lambda: ["CUDAExecutionProvider", "CoreMLExecutionProvider", "CPUExecutionProvider"]
    )
    mock_input_size: int = 224
    mock_load_delay: float = 0.0
    mock_predict_delay: float = 0.0

    # -- Capture flow --
    preview_step: bool = True              # capturing -> previewing (confirm/retake) vs straight to classifying
    initial_facing: str = "environment"
    facing_constraint: str = "ideal"       # ideal | exact

    # -- Camera device --
    camera_backend: str = "cv2"            # cv2 | mock
    camera_index_user: Optional[int] = None
    camera_index_environment: Optional[int] = 0
    camera_width: int = 1280
    camera_height: int = 720
    warmup_frames: int = 3
    jpeg_quality: int = 90

    # -- Service --
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self):
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        for f in fields(self):
            env_value = os.environ.get(f"SNAP_{f.name.upper()}")
            if env_value is None:
                continue
            current = getattr(self, f.name)
            if isinstance(current, bool):
                value = _as_bool(env_value)
            elif isinstance(current, list):
                value = _as_list(env_value)
            elif f.name.startswith("camera_index_"):
                value = int(env_value) if env_value.strip() else None
            elif isinstance(current, int):
                value = int(env_value)
            elif isinstance(current, float):
                value = float(env_value)
            else:
                value = env_value
            setattr(self, f.name, value)

    def device_index(self, facing: str) -> Optional[int]:
        return self.camera_index_user if facing == "user" else self.camera_index_environment


_config_instance: Optional[Config] = None


def get_config() -> Config:
    global _config_instance
    if _config_instance is None:
        load_dotenv(override=False)
        _config_instance = Config()
    return _config_instance


def reset_config():
    global _config_instance
    _config_instance = None
