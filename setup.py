#!/usr/bin/env python3
"""
Setup script for Harrier.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="harrier",
    version="0.1.0",
    description="Async route compilation and request dispatch engine for ASGI applications",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Harrier Contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "uvicorn>=0.30.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "pydantic>=2.5.0",
        "orjson>=3.9.0",
    ],
    extras_require={
        "redis": [
            "redis>=5.0.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.24.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
    ],
    keywords="asgi routing dependency-injection cache async",
)
