"""Packaging for rowfs (src layout, pure Python)."""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).parent


def get_version() -> str:
    for line in (HERE / "src" / "rowfs" / "_version.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("Could not find __version__ in src/rowfs/_version.py")


setup(
    name="rowfs",
    version=get_version(),
    description="Per-project virtual filesystem kept as rows in SQLite",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "click>=8.1",
        "rich>=13.0",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    entry_points={
        "console_scripts": ["rowfs=rowfs.cli:main"],
    },
)
