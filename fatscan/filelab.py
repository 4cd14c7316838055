import logging

from fatscan.common import *

logger = logging.getLogger(__name__)


class ShortReadError(IOError):
    '''
    a positioned read returned fewer bytes than requested.
    the backing image is truncated relative to the structures that describe it.
    '''
    def __init__(self, off, size, got):
        IOError.__init__(self, 'read(%d,%d) short: %d' % (off, size, got))
        self.off = off
        self.size = size
        self.got = got


class FileLab(OnDemand):
    '''
    Base class for volume parsers backed by a seekable file object.

    The FileLab class provides on-demand parsing of structures and
    length-checked positioned reads.  All offsets are absolute offsets
    into the file object; `off` records where the parsed volume begins.

    Example:

        class FooLab(FileLab):

            def __init__(self, fd, off=0):
                FileLab.__init__(self, fd, off=off)
                self.add('hdr', self._getHeader )

            def _getHeader(self):
                return self.getStruct(self.off, 512, FOO_HEADER)

        foo = FooLab(fd)
        print( foo['hdr'].Magic )

    '''
    def __init__(self, fd, off=0):
        OnDemand.__init__(self)
        self.fd = fd
        self.off = off

    def getStruct(self, off, size, cls, *args, **kwargs):
        '''
        Construct a VStruct and parse it from `size` bytes at the file offset.

        Example:

            bpb = lab.getStruct(0, 512, BIOS_PARAMETER_BLOCK_FAT32)

        Notes:

            * if off is None, the current file offset is used
            * raises ShortReadError if fewer than `size` bytes are available

        '''
        if off is None:
            off = self.fd.tell()

        byts = self.readAtOff(off, size)
        obj = cls(*args,**kwargs)
        obj.vsParse(byts)
        return obj

    def readAtOff(self, off, size, shortok=False):
        '''
        Read exactly `size` bytes at the absolute file offset `off`.
        '''
        self.fd.seek(off)
        byts = self.fd.read(size)
        if len(byts) != size and not shortok:
            logger.debug('filelab: short read: off: %x size: %x got: %x', off, size, len(byts))
            raise ShortReadError(off, size, len(byts))
        return byts
