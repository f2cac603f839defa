#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
A minimal setup.py file that defers to pyproject.toml for configuration.
Kept for older packaging tools that do not read pyproject.toml.
"""

import setuptools

if __name__ == "__main__":
    setuptools.setup()
