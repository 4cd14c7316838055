'''
Read-only access to a FAT32 volume image: cluster addressing, directory
entry streams and chain-backed file reads.
'''
import logging

import fatscan.formats.fat32 as fat32

from fatscan.filelab import *


logger = logging.getLogger(__name__)


class File:
    '''
    a short directory entry paired with the volume that owns its chain.
    directories have no meaningful size; reads from them are unbounded.
    '''
    def __init__(self, lab, short_name, cluster_number, size, attrs=0):
        self._lab = lab
        self.short_name = short_name
        self.cluster_number = cluster_number
        self.size = size
        self.attrs = attrs

    @classmethod
    def fromEntry(cls, lab, entry):
        '''
        type entry: fat32.DIRECTORY_ENTRY
        '''
        return cls(lab, entry.name, entry.first_cluster, entry.DIR_FileSize, attrs=entry.DIR_Attr)

    @property
    def is_directory(self):
        return bool(self.attrs & fat32.DIRECTORY_ATTRIBUTES.ATTR_DIRECTORY)

    def read(self, offset=0, length=None):
        '''
        read `length` bytes at `offset` in the file. with no length, read
         to the recorded end of a file (directories need an explicit length).

        rtype: bytes
        '''
        if length is None:
            if self.is_directory:
                raise fat32.IllegalArgumentException('directory reads need a length')
            length = self.size
        return self._lab.readFile(self, offset, length)

    def getEntries(self):
        '''
        the raw records of this directory.

        rtype: DirectoryEntries
        '''
        return DirectoryEntries(self._lab, self.cluster_number)

    def __str__(self):
        if self.is_directory:
            return 'Directory (name: %s)' % (self.short_name)
        return 'File (name: %s)' % (self.short_name)


class DirectoryEntries:
    '''
    the records of a directory, decoded lazily one sector at a time while
     following the directory's cluster chain.

    yields every raw DIRECTORY_ENTRY, including deleted and long name
     records, and stops before the first record whose name starts with 0x00.
    each iteration restarts from the head of the chain.

    Example:

        for entry in DirectoryEntries(lab, lab['geometry'].root_cluster):
            print(entry.name)
    '''
    def __init__(self, lab, cluster_number):
        self._lab = lab
        self.cluster_number = cluster_number

    def __iter__(self):
        geo = self._lab['geometry']
        fat = self._lab['fat']
        per_sector = geo.bytes_per_sector // fat32.FILE_ENTRY_SIZE

        for cluster in fat.iterClusterChain(self.cluster_number):
            sector = geo.clusterToSector(cluster)
            for i in range(geo.sectors_per_cluster):
                logger.debug('directory: load sector: cluster: %x sector: %x', cluster, sector + i)
                dir_data = self._lab.getStruct(self._lab.sectorOffset(sector + i),
                        geo.bytes_per_sector, fat32.DIRECTORY_DATA, per_sector)

                for entry in dir_data.entries:
                    if entry.is_end:
                        return
                    yield entry


class Fat32Lab(FileLab):
    '''
    an on-demand parser for a FAT32 volume image.

    the boot sector, geometry, FS information sector and the first
     allocation table are each parsed once, on first use:

        lab = Fat32Lab(fd)
        geo = lab['geometry']
        fat = lab['fat']
        fsinfo = lab.get('fsinfo')   # None when the volume has none

    param off: byte offset of the volume within `fd`.
    param strict: raise on FS information signature mismatches and
     on chain anomalies, instead of logging and recording them.
    '''
    def __init__(self, fd, off=0, strict=False):
        FileLab.__init__(self, fd, off=off)
        self.strict = strict
        self.add('bootsector', self._getBootSector)
        self.add('bpb', lambda: self['bootsector'][0])
        self.add('geometry', lambda: self['bootsector'][1])
        self.add('fsinfo', self._getFsInfo)
        self.add('fat', self._getFat)

    def _getBootSector(self):
        try:
            byts = self.readAtOff(self.off, fat32.BOOT_SECTOR_SIZE)
        except ShortReadError as e:
            raise fat32.FormatError('boot sector short: %s' % (e,))

        bpb, geo = fat32.parseBootSector(byts)
        logger.debug('volume: geometry: %s', geo)
        return bpb, geo

    def _getFsInfo(self):
        geo = self['geometry']
        if not geo.has_fs_info:
            logger.debug('volume: no fs info sector')
            return None

        off = self.sectorOffset(geo.fs_info_sector)
        try:
            fsinfo = self.getStruct(off, fat32.FS_INFO_SIZE, fat32.FS_INFO)
        except ShortReadError as e:
            raise fat32.FormatError('fs info sector short: %s' % (e,))

        if not fsinfo.is_valid:
            if self.strict:
                fsinfo.validate()
            logger.warning('volume: fs info signatures do not match')
        return fsinfo

    def _getFat(self):
        geo = self['geometry']
        size = geo.fat_entry_count * fat32.FAT_ENTRY_SIZE
        logger.debug('volume: load fat: off: %x entries: %x', geo.fat_offset, geo.fat_entry_count)
        try:
            return self.getStruct(self.off + geo.fat_offset, size, fat32.FILE_ALLOCATION_TABLE,
                    geo.fat_entry_count, strict=self.strict)
        except ShortReadError as e:
            raise fat32.FormatError('allocation table short: %s' % (e,))

    def sectorOffset(self, sector):
        '''
        absolute file offset of the given volume sector.
        '''
        return self.off + sector * self['geometry'].bytes_per_sector

    def clusterToSector(self, cluster):
        return self['geometry'].clusterToSector(cluster)

    def readSector(self, sector, size=None):
        '''
        one positioned read at the start of the given sector.
        '''
        if size is None:
            size = self['geometry'].bytes_per_sector
        return self.readAtOff(self.sectorOffset(sector), size)

    def readCluster(self, cluster, size=None):
        '''
        one positioned read at the first sector of the given cluster.
        the size is clamped to the cluster size.

        rtype: bytes
        '''
        cluster_size = self['geometry'].cluster_size
        if size is None or size > cluster_size:
            size = cluster_size
        return self.readSector(self.clusterToSector(cluster), size)

    def getRootDirectory(self):
        '''
        synthesize a File for the root directory. its size is the byte
         length of the root chain; only approximate, nothing relies on it.

        rtype: File
        '''
        geo = self['geometry']
        chain = self['fat'].getClusterChain(geo.root_cluster)
        return File(self, '/', geo.root_cluster, len(chain) * geo.cluster_size,
                attrs=fat32.DIRECTORY_ATTRIBUTES.ATTR_DIRECTORY)

    def readFile(self, fh, offset, length):
        '''
        read `length` bytes at byte `offset` of the file's cluster chain.

        file reads are clamped to the recorded size; directory reads are not.
        raises BoundsError if the chain ends before the range is filled.

        type fh: File
        rtype: bytes
        '''
        if offset < 0 or length < 0:
            raise fat32.IllegalArgumentException('negative read: off: %d len: %d' % (offset, length))

        if not fh.is_directory:
            length = max(0, min(length, fh.size - offset))

        if length == 0:
            return b''

        cluster_size = self['geometry'].cluster_size
        chain = self['fat'].iterClusterChain(fh.cluster_number)

        # the chain needs (offset // cluster_size) links before the first cluster we read
        cluster = None
        for _ in range(offset // cluster_size + 1):
            cluster = next(chain, None)
            if cluster is None:
                raise fat32.BoundsError('chain ends before offset %d: start: %x' % (offset, fh.cluster_number))

        logger.debug('file: read: start: %x off: %x len: %x first: %x', fh.cluster_number, offset, length, cluster)

        skip = offset % cluster_size
        remain = length
        chunks = []
        while True:
            data = self.readCluster(cluster, min(cluster_size, skip + remain))[skip:]
            chunks.append(data)
            remain -= len(data)
            skip = 0
            if remain == 0:
                break

            cluster = next(chain, None)
            if cluster is None:
                raise fat32.BoundsError('chain ends %d bytes short: start: %x' % (remain, fh.cluster_number))

        return b''.join(chunks)
