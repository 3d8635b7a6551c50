#!/usr/bin/python3
# Setup file for tinygit
# Copyright (C) 2024 Tinygit contributors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

tests_require = ["pytest"]

setup(
    name="tinygit",
    version="0.1.0",
    description="Minimal Python implementation of the Git object store and HTTP clone",
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=["tinygit"],
    package_data={"": ["py.typed"]},
    install_requires=["urllib3>=2.2.2"],
    extras_require={"test": tests_require},
    entry_points={"console_scripts": ["tinygit=tinygit.cli:_main"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
