"""Code file output."""

from pathlib import Path
from typing import Sequence

from clinspan.errors import SerializationError


def render_code_file(codes: Sequence[str]) -> str:
    return " ".join(codes)


def write_code_file(codes: Sequence[str], output_dir: Path | str, name: str) -> Path:
    """Write the space-joined code stream to ``output_dir / name``.

    An existing file is overwritten. The directory is not created.

    Raises:
        SerializationError: If the directory is missing or the file cannot be written.
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        raise SerializationError(name, f"code output directory does not exist: {output_dir}")
    path = output_dir / name
    try:
        path.write_text(render_code_file(codes), encoding="utf-8")
    except OSError as e:
        raise SerializationError(name, f"cannot write {path}: {e}") from e
    return path
