'''
FAT32 volume image scanner.
'''
__version__ = (0, 1, 0)
