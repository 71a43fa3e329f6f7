#!/usr/bin/env python3
"""
Weather Cache Service Setup
"""

import os

from setuptools import find_packages, setup

# Read the README file
with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements
with open("requirements.txt", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

# Read version
version = "1.0.0"
if os.path.exists("weather_service/__init__.py"):
    with open("weather_service/__init__.py") as f:
        for line in f:
            if line.startswith("__version__"):
                version = line.split("=")[1].strip().strip('"').strip("'")
                break

setup(
    name="weather-cache-service",
    version=version,
    description="Two-level cached, circuit-broken weather data service",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["weather_service", "weather_service.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "weather-service=weather_service.main:main",
        ],
    },
    zip_safe=False,
    keywords="weather, cache, redis, circuit breaker, retry, fastapi",
)
