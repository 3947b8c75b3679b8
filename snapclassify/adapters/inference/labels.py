"""
Label taxonomy: ordered labels, index-aligned with the model output.

Accepted files:
  - JSON list:            ["tabby cat", "golden retriever", ...]
  - JSON object by index: {"0": "tabby cat", "1": "golden retriever", ...}
  - plain text:           one label per line
"""
import json
from pathlib import Path

# Built-in taxonomy for the mock runtime
DEFAULT_LABELS: list[str] = [
    "cat", "dog", "bird", "car", "bicycle",
    "cup", "book", "plant", "laptop", "shoe",
]


def parse_labels(text: str) -> list[str]:
    stripped = text.strip()
    if stripped.startswith(("[", "{")):
        data = json.loads(stripped)
        if isinstance(data, dict):
            return [str(data[k]) for k in sorted(data, key=int)]
        return [str(x) for x in data]
    return [line.strip() for line in stripped.splitlines() if line.strip()]


def load_labels(path: str | None) -> list[str]:
    if not path:
        return list(DEFAULT_LABELS)
    labels = parse_labels(Path(path).read_text(encoding="utf-8"))
    if not labels:
        raise ValueError(f"label file {path} is empty")
    return labels
