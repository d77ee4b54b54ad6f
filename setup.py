#!/usr/bin/env python3
"""
FLOWSWATH Setup Script
======================

Setup script for FLOWSWATH stream network and swath profile tool.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    with open(readme_path, "r", encoding="utf-8") as f:
        long_description = f.read()

install_requires = [
    "numpy>=1.21",
    "scipy>=1.8",
    "scikit-image>=0.19",
    "rasterio>=1.3",
    "shapely>=2.0",
    "geopandas>=0.12",
    "pandas>=1.4",
    "matplotlib>=3.5",
    "pyyaml>=6.0",
    "jsonschema>=4.0",
]

setup(
    name="flowswath",
    version="1.0.0",
    description="Stream network extraction and topographic swath profiles from DEMs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="FLOWSWATH Team",
    packages=find_packages(include=["flowswath", "flowswath.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: GIS",
        "Topic :: Scientific/Engineering :: Hydrology",
    ],
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "black>=21.0",
            "flake8>=3.8",
            "mypy>=0.800",
        ],
    },
    entry_points={
        "console_scripts": [
            "flowswath=flowswath.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
