"""
Florin setup.py - install the confidential-balance packages.

Three top-level packages are installed side by side:

    florin_wire   interchange layer (codec, ciphertexts, verification)
    florin_zk     offline proof generation
    florin_core   ledger-facing store, adapters and service

Usage:
    pip install .              # install everything
    pip install ".[dev]"       # install with dev tools
"""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).resolve().parent
long_description = ""
if (HERE / "README.md").exists():
    long_description = (HERE / "README.md").read_text(encoding="utf-8")

setup(
    name="florin",
    version="0.4.0",
    description="Confidential token balances with twisted ElGamal and zero-knowledge proofs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    author="Florin Contributors",
    python_requires=">=3.10",
    packages=find_packages(include=["florin_wire", "florin_zk", "florin_core"]),
    install_requires=[
        "ecdsa>=0.18.0,<0.20",
        "aiohttp>=3.9.0,<4",
        "tomli>=2.0.0,<3;python_version<'3.11'",
        "pycryptodome>=3.21.0,<4",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-cov>=4.0",
            "mypy>=1.5",
            "ruff>=0.1.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Security :: Cryptography",
        "Topic :: Software Development :: Libraries",
    ],
)
