from __future__ import annotations

from setuptools import find_packages, setup


setup(
    name="pkscf",
    version="0.1.0",
    description="Symmetry-blocked ROHF/RHF SCF over an in-core PK supermatrix",
    packages=find_packages(include=["pkscf", "pkscf.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "scipy",
    ],
    extras_require={
        "test": [
            "pytest",
            "pyscf",
        ],
    },
)
