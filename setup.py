#!/usr/bin/env python
# -*- coding: utf-8 -*-

import os
import re

from setuptools import setup


def get_version(package):
    """
    Return package version as listed in `__version__` in `init.py`.
    """
    init_py = open(os.path.join(package, "__init__.py")).read()
    return re.search("__version__ = ['\"]([^'\"]+)['\"]", init_py).group(1)


def get_long_description():
    """
    Return the README.
    """
    return open("README.md", "r", encoding="utf8").read()


def get_packages(package):
    """
    Return root package and all sub-packages.
    """
    return [
        dirpath
        for dirpath, dirnames, filenames in os.walk(package)
        if os.path.exists(os.path.join(dirpath, "__init__.py"))
    ]


setup(
    name="sse-stage",
    version=get_version("sse_stage"),
    license="MIT",
    description="Reconnecting, demand driven Server-Sent Events client",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    package_data={"sse_stage": ["py.typed"]},
    packages=get_packages("sse_stage"),
    python_requires=">=3.8",
    install_requires=[
        "anyio>=4.0",
        "httpx>=0.24",
    ],
    extras_require={
        "test": [
            "pytest",
            "starlette",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: AnyIO",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Internet :: WWW/HTTP",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
    ],
)
