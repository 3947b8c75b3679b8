from typing import Literal

PhaseName = Literal[
    "initializing", "ready", "capturing", "previewing", "classifying", "done", "error",
]

INITIALIZING = "initializing"
READY = "ready"
CAPTURING = "capturing"
PREVIEWING = "previewing"
CLASSIFYING = "classifying"
DONE = "done"
ERROR = "error"

# Phase semantics:
# initializing: model loading
# capturing:    camera stream live, waiting for a still
# previewing:   still held, waiting for confirm / retake
# classifying:  forward pass in flight
# error:        fatal if entered from initializing, else camera failure (retry re-opens)
