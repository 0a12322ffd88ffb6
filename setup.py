#!/usr/bin/python3
# Setup file for cairn
# Copyright (C) 2008-2022 Jelmer Vernooĳ <jelmer@jelmer.uk>
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

setup(
    name="cairn",
    version="0.1.0",
    description="Git object store and smart HTTP clone client",
    keywords=["vcs", "git"],
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.9",
    packages=["cairn"],
    package_data={"": ["py.typed"]},
    install_requires=["urllib3>=2.2.2"],
    extras_require={
        "dev": ["ruff==0.14.1", "mypy==1.18.2"],
    },
    entry_points={
        "console_scripts": ["cairn=cairn.cli:_main"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
