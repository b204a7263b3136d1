"""
Espressif LLVM release builder.

Builds the Espressif LLVM fork for one platform and packages the installed
toolchain as dist/<version>-<target>.tar.xz.
"""

__version__ = "0.1.0"
