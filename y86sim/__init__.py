"""Y86-64 instruction set model, assembler, simulator and HCL code generator."""

__version__ = "0.1.0"
__all__ = ["__version__"]