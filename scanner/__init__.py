"""Local descriptor discovery."""
from scanner.directory import DirectoryScanner

__all__ = ['DirectoryScanner']
