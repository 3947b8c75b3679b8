"""Builds a CaptureSession from Config: runtime, camera backend, labels."""
from snapclassify.adapters.camera.manager import CameraManager
from snapclassify.adapters.inference.engine import InferenceEngine
from snapclassify.adapters.inference.labels import load_labels
from snapclassify.adapters.model.loader import ModelLoader
from snapclassify.adapters.model.tensors import TensorPool
from snapclassify.config import Config
from snapclassify.orchestrator.state_machine import CaptureSession


def build_runtime(config: Config, status_store, pool: TensorPool, num_classes: int):
    if config.runtime == "onnx":
        from snapclassify.adapters.model.onnx_runtime import OnnxRuntime
        return OnnxRuntime(status_store, pool, providers=config.providers)
    from snapclassify.adapters.model.mock_runtime import MockRuntime
    return MockRuntime(
        status_store, pool, num_classes=num_classes, input_size=config.mock_input_size,
        load_delay=config.mock_load_delay, predict_delay=config.mock_predict_delay,
    )


def build_devices(config: Config, status_store):
    if config.camera_backend == "cv2":
        from snapclassify.adapters.camera.cv2_camera import CV2MediaDevices
        indexes = {"user": config.camera_index_user, "environment": config.camera_index_environment}
        return CV2MediaDevices(status_store, indexes, warmup_frames=config.warmup_frames)
    from snapclassify.adapters.camera.mock_camera import MockMediaDevices
    return MockMediaDevices(status_store)


def build_session(config: Config, status_store, pool: TensorPool | None = None,
                  runtime=None, devices=None) -> CaptureSession:
    if pool is None:
        pool = TensorPool()
    labels = load_labels(config.labels_path)
    status_store.log(f"factory: runtime={config.runtime} camera={config.camera_backend} labels={len(labels)}")

    if runtime is None:
        runtime = build_runtime(config, status_store, pool, len(labels))
    if devices is None:
        devices = build_devices(config, status_store)

    loader = ModelLoader(runtime, config.model_source, status_store)
    camera = CameraManager(
        devices, status_store,
        facing=config.initial_facing,
        constraint=config.facing_constraint,
        width=config.camera_width,
        height=config.camera_height,
        jpeg_quality=config.jpeg_quality,
    )
    engine = InferenceEngine(
        pool, labels, status_store,
        top_k=config.top_k,
        input_range=config.input_range,
        output_activation=config.output_activation,
    )
    return CaptureSession(loader, camera, engine, status_store,
                          preview_step=config.preview_step, jpeg_quality=config.jpeg_quality)
