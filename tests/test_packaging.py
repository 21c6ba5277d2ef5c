"""Packaging regression tests.

Tests that verify the source tree and installed package structure.
"""

from pathlib import Path


def test_source_layout():
    """verikit lives under src/, with kernel and _internal as subpackages."""
    here = Path(__file__).resolve().parent
    src_verikit = here.parent / "src" / "verikit"

    assert src_verikit.exists(), "verikit package should exist in src/"
    assert (src_verikit / "kernel").exists(), "verikit.kernel should exist in src/"
    assert (src_verikit / "_internal").exists(), "verikit._internal should exist in src/"


def test_import_boundary():
    """The package and its kernel import without network or state side effects."""
    import verikit
    import verikit.kernel.hash_matcher  # noqa: F401

    # "dev" in a source checkout, the distribution version once installed
    assert verikit.__version__ == "dev" or verikit.__version__[0].isdigit()


def test_kernel_has_no_io_dependencies():
    """Kernel modules never import the HTTP client or local state."""
    here = Path(__file__).resolve().parent
    kernel = here.parent / "src" / "verikit" / "kernel"
    for path in kernel.glob("*.py"):
        text = path.read_text(encoding="utf-8")
        for forbidden in ("import httpx", "verikit.client", "verikit.store", "asyncio"):
            assert forbidden not in text, f"{path.name} imports {forbidden}"
