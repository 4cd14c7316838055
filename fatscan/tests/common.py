import io
import struct
import unittest

import fatscan.formats.fat32 as fat32

LAST = 0x0FFFFFFF

class FatTest(unittest.TestCase):

    def eq(self, x, y):
        self.assertEqual(x,y)

    def ne(self, x, y):
        self.assertNotEqual(x,y)

    def nn(self, x):
        self.assertIsNotNone(x)

    def true(self, x):
        self.assertTrue(x)

    def false(self, x):
        self.assertFalse(x)

def dirEntry(name, attr=0, cluster=0, size=0):
    '''
    Emit one 32 byte short directory entry.

    Example:

        byts = dirEntry(b'FILE    TXT', attr=0x20, cluster=4, size=5)

    '''
    entry = fat32.DIRECTORY_ENTRY()
    # every vbytes field is set explicitly so the emitted record is 32 bytes
    entry.DIR_Name = name.ljust(fat32.DIR_NAME_SIZE, b' ')
    entry.DIR_Attr = attr
    entry.DIR_NTRes = b'\x00'
    entry.DIR_CrtTimeTenth = b'\x00'
    entry.DIR_CrtTime = b'\x00' * 2
    entry.DIR_CrtDate = b'\x00' * 2
    entry.DIR_LstAccDate = b'\x00' * 2
    entry.DIR_FstClusHI = (cluster >> 16) & 0xFFFF
    entry.DIR_WrtTime = b'\x00' * 2
    entry.DIR_WrtDate = b'\x00' * 2
    entry.DIR_FstClusLO = cluster & 0xFFFF
    entry.DIR_FileSize = size
    return entry.vsEmit()

def packFat(entries, num_entries):
    '''
    Little endian FAT bytes from a {cluster: value} dict; unset entries are free.
    '''
    valus = [0] * num_entries
    for cluster, valu in entries.items():
        valus[cluster] = valu
    return struct.pack('<%dI' % (num_entries,), *valus)

class Fat32Image:
    '''
    An in-memory FAT32 volume built up cluster by cluster.

    Example:

        img = Fat32Image()
        img.setChain([2])
        img.writeEntries([2], [ dirEntry(b'FILE    TXT', cluster=3, size=5) ])
        img.setChain([3])
        img.writeCluster(3, b'hello')
        fd = img.open()

    '''
    def __init__(self, bytes_per_sector=512, sectors_per_cluster=1, reserved_sectors=32, num_fats=1,
            sectors_per_fat=1, total_sectors=64, root_cluster=2, fs_info_sector=1, legacy_sizes=False):
        self.bytes_per_sector = bytes_per_sector
        self.sectors_per_cluster = sectors_per_cluster
        self.reserved_sectors = reserved_sectors
        self.num_fats = num_fats
        self.sectors_per_fat = sectors_per_fat
        self.total_sectors = total_sectors
        self.root_cluster = root_cluster
        self.fs_info_sector = fs_info_sector
        self.legacy_sizes = legacy_sizes

        self.fs_info_sigs = (fat32.FSI_LEAD_SIG, fat32.FSI_STRUC_SIG, fat32.FSI_TAIL_SIG)
        self.fat = { 0: 0x0FFFFFF8, 1: 0x0FFFFFFF }
        self.data = bytearray(total_sectors * bytes_per_sector)

    @property
    def cluster_size(self):
        return self.sectors_per_cluster * self.bytes_per_sector

    @property
    def fat_entry_count(self):
        return self.sectors_per_fat * self.bytes_per_sector // 4

    def clusterOffset(self, cluster):
        sector = self.reserved_sectors + self.sectors_per_fat * self.num_fats
        sector += (cluster - 2) * self.sectors_per_cluster
        return sector * self.bytes_per_sector

    def setFat(self, cluster, valu):
        self.fat[cluster] = valu

    def setChain(self, clusters):
        '''
        Link the clusters in order and terminate the last one.
        '''
        for cur, nxt in zip(clusters, clusters[1:]):
            self.fat[cur] = nxt
        self.fat[clusters[-1]] = LAST

    def writeCluster(self, cluster, byts, off=0):
        start = self.clusterOffset(cluster) + off
        self.data[start:start + len(byts)] = byts

    def writeEntries(self, clusters, entries):
        '''
        Lay out directory records across the given clusters, in order.
        '''
        byts = b''.join(entries)
        for i, cluster in enumerate(clusters):
            chunk = byts[i * self.cluster_size:(i + 1) * self.cluster_size]
            if not chunk:
                break
            self.writeCluster(cluster, chunk)

    def bootSector(self):
        bpb = fat32.BIOS_PARAMETER_BLOCK_FAT32()
        bpb.BPB_jmpBoot = b'\xEB\x58\x90'
        bpb.BPB_OEMName = b'mkfs.fat'
        bpb.BPB_BytsPerSec = self.bytes_per_sector
        bpb.BPB_SecPerClus = self.sectors_per_cluster
        bpb.BPB_RsvdSecCnt = self.reserved_sectors
        bpb.BPB_NumFATs = self.num_fats
        bpb.BPB_RootEntCnt = 0
        bpb.BPB_Media = 0xF8
        bpb.BPB_SecPerTrk = 0
        bpb.BPB_NumHeads = 0
        bpb.BPB_HiddSec = 0

        if self.legacy_sizes:
            bpb.BPB_TotSec16 = self.total_sectors
            bpb.BPB_TotSec32 = 0
            bpb.BPB_FATSz16 = self.sectors_per_fat
            bpb.BPB_FATSz32 = 0
        else:
            bpb.BPB_TotSec16 = 0
            bpb.BPB_TotSec32 = self.total_sectors
            bpb.BPB_FATSz16 = 0
            bpb.BPB_FATSz32 = self.sectors_per_fat

        bpb.BPB_ExtFlags = 0
        bpb.BPB_FSVer = 0
        bpb.BPB_RootClus = self.root_cluster
        bpb.BPB_FSInfo = self.fs_info_sector
        bpb.BPB_BkBootSec = 6
        bpb.BPB_Reserved = b'\x00' * 12
        bpb.BPB_DrvNum = 0x80
        bpb.BPB_Reserved1 = 0
        bpb.BPB_BootSig = 0x29
        bpb.BPB_VolID = 0xF4D2E90C
        bpb.BPB_VolLab = b'NO NAME    '
        bpb.BPB_FilSysType = b'FAT32   '
        bpb.BPB_BootCode = b'\x00' * 420
        bpb.EndOfSectorMarker = 0xAA55
        return bpb.vsEmit()

    def fsInfo(self):
        fsinfo = fat32.FS_INFO()
        fsinfo.FSI_LeadSig, fsinfo.FSI_StrucSig, fsinfo.FSI_TailSig = self.fs_info_sigs
        fsinfo.FSI_Reserved1 = b'\x00' * 480
        fsinfo.FSI_Free_Count = 0x30
        fsinfo.FSI_Nxt_Free = 0x5
        fsinfo.FSI_Reserved2 = b'\x00' * 12
        return fsinfo.vsEmit()

    def fatTable(self):
        table = fat32.FILE_ALLOCATION_TABLE(self.fat_entry_count)
        table.FAT_Entries = packFat(self.fat, self.fat_entry_count)
        return table.vsEmit()

    def getvalue(self):
        data = bytearray(self.data)
        data[0:512] = self.bootSector()

        if self.fs_info_sector not in fat32.NO_FS_INFO:
            off = self.fs_info_sector * self.bytes_per_sector
            data[off:off + 512] = self.fsInfo()

        table = self.fatTable()
        for i in range(self.num_fats):
            off = (self.reserved_sectors + i * self.sectors_per_fat) * self.bytes_per_sector
            data[off:off + len(table)] = table

        return bytes(data)

    def open(self):
        return io.BytesIO(self.getvalue())

def minimalImage():
    '''
    root (cluster 2) holding one subdirectory (cluster 3) holding one
    five byte file (cluster 4).
    '''
    img = Fat32Image()
    img.setChain([2])
    img.setChain([3])
    img.setChain([4])

    img.writeEntries([2], [
        dirEntry(b'SUBDIR', attr=0x10, cluster=3),
    ])
    img.writeEntries([3], [
        dirEntry(b'.', attr=0x10, cluster=3),
        dirEntry(b'..', attr=0x10, cluster=0),
        dirEntry(b'FILE    TXT', attr=0x20, cluster=4, size=5),
    ])
    img.writeCluster(4, b'hello')
    return img
