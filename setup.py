from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup


ROOT = Path(__file__).parent.resolve()


def read_version() -> str:
    """Return the package version declared in ``local_linear_grf/__init__.py``."""
    for line in (ROOT / "local_linear_grf" / "__init__.py").read_text(encoding="utf-8").splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip("\"'")
    raise RuntimeError("Unable to find __version__.")


setup(
    name="local-linear-grf",
    version=read_version(),
    description="Honest regression forests with local linear corrections",
    packages=find_packages(include=["local_linear_grf", "local_linear_grf.*"]),
    python_requires=">=3.9",
    install_requires=["numpy>=1.22", "tqdm"],
    extras_require={"tests": ["pytest"]},
)
