"""Locally supplied source files."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from verikit.errors import FileReadError
from .hash_utils import keccak256


@dataclass
class CandidateFile:
    """A named file offered for matching or submission.

    Content is either given directly or read lazily from ``path``.
    The content hash is computed once and cached on the instance.
    """
    name: str
    content: Optional[bytes] = None
    path: Optional[Path] = None
    _hash: Optional[str] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.content is None and self.path is None:
            raise ValueError(f"CandidateFile '{self.name}' needs content or a path")
        if isinstance(self.content, str):
            self.content = self.content.encode('utf-8')

    @classmethod
    def from_path(cls, path: Union[str, Path], name: Optional[str] = None) -> "CandidateFile":
        p = Path(path)
        return cls(name=name or p.name, path=p)

    @classmethod
    def from_text(cls, name: str, text: str) -> "CandidateFile":
        return cls(name=name, content=text.encode('utf-8'))

    def read_bytes(self) -> bytes:
        if self.content is None:
            try:
                self.content = self.path.read_bytes()
            except OSError as e:
                raise FileReadError(self.name, str(e))
        return self.content

    def read_text(self) -> str:
        try:
            return self.read_bytes().decode('utf-8')
        except UnicodeDecodeError as e:
            raise FileReadError(self.name, f"not valid UTF-8 ({e.reason})")

    @property
    def size(self) -> int:
        return len(self.read_bytes())

    @property
    def content_hash(self) -> str:
        if self._hash is None:
            self._hash = keccak256(self.read_bytes())
        return self._hash
