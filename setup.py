#!/usr/bin/env python3
"""
Setup script for Study Engagement Analytics
"""

from setuptools import find_packages, setup


setup(
    name="study-engagement-analytics",
    version="1.0.0",
    description="Real-time multi-signal study engagement analytics engine",
    python_requires=">=3.8",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "numpy>=1.21.0",
        "pandas>=1.3.0",
        "matplotlib>=3.4.0",
        "PyYAML>=5.4",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "engagement-analytics=engagement_analytics.main:main",
        ],
    },
)
