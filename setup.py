#!/usr/bin/env python3
"""
Setup script for the HypeRate channel client
"""

from setuptools import setup, find_packages

setup(
    name="hyperate-client",
    version="0.1.0",
    description="Asyncio client for HypeRate heartbeat and clip channels",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "websockets==15.0",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'hyperate=client.cli:main',
        ],
    },
)
