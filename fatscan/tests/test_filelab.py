import io
import unittest

from vstruct2.types import *
from fatscan.filelab import *

class Woot(VStruct):
    def __init__(self):
        VStruct.__init__(self)
        self.one = uint8()
        self.two = uint16()

class FooLab(FileLab):
    def __init__(self, fd, off=0):
        FileLab.__init__(self, fd, off=off)

        self.add('woot',self._getWoot)
        self.add('baz',self._getFooBaz)

    def _getFooBaz(self):
        return 'foobaz'

    def _getWoot(self):
        return self.getStruct( self.off, 3, Woot )

class FileLabTest(unittest.TestCase):

    def test_filelab(self):
        fd = io.BytesIO( b'asdfqwer' )

        foo = FooLab(fd)
        self.assertEqual( foo['baz'], 'foobaz' )
        self.assertEqual( foo['woot'].one, 0x61 )
        self.assertEqual( foo['woot'].two, 0x6473 )

    def test_filelab_offset(self):
        fd = io.BytesIO( b'asdfqwer' )

        foo = FooLab(fd, off=4)
        self.assertEqual( foo['woot'].one, 0x71 )

    def test_filelab_readatoff(self):
        fd = io.BytesIO( b'asdfqwer' )
        foo = FooLab(fd)

        self.assertEqual( foo.readAtOff(2, 3), b'dfq' )
        self.assertEqual( foo.readAtOff(6, 10, shortok=True), b'er' )

        with self.assertRaises(ShortReadError) as cm:
            foo.readAtOff(6, 10)

        self.assertEqual( cm.exception.off, 6 )
        self.assertEqual( cm.exception.got, 2 )
        self.assertTrue( isinstance(cm.exception, IOError) )

    def test_filelab_short_struct(self):
        fd = io.BytesIO( b'as' )
        foo = FooLab(fd)

        with self.assertRaises(ShortReadError):
            foo['woot']
