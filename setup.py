#!/usr/bin/env python3
"""Setup script for atv_remote and atv_bridge packages."""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="androidtv-remote-bridge",
    version="1.0.0",
    author="",
    author_email="",
    description="HTTP bridge for controlling Android TV devices over the Android TV Remote protocol",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Home Automation",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="android-tv google-tv remote bridge mqtt smart-tv home-automation",
    install_requires=[
        "androidtvremote2>=0.1.1",
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "pydantic>=2.0",
        "paho-mqtt>=2.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "atv-bridge=atv_bridge.__main__:main",
        ],
    },
    python_requires=">=3.9",
)
