'''
FAT32 file system structures. Read-only decoding of the boot sector,
FS information sector, file allocation table and short directory entries.
'''
import struct
import logging

import vstruct2.types as v_types


logger = logging.getLogger(__name__)


class IllegalArgumentException(ValueError):
    pass


class CorruptFileSystemError(Exception):
    '''
    an error occured while parsing existing structures from the file system.
    '''
    pass


class FormatError(CorruptFileSystemError):
    '''
    the boot sector or FS information sector could not be read, or describes
     an unusable geometry. fatal: nothing else can be located without it.
    '''
    pass


class BoundsError(CorruptFileSystemError):
    '''
    a cluster chain ended before a requested byte range was filled.
    '''
    pass


class ChainAnomaly(CorruptFileSystemError):
    '''
    a cluster chain left the set of well-formed links: it reached a reserved
     or bad marker, a free entry, a cluster outside the table, or a cluster
     it already produced. the chain is cut short at `cluster`.
    '''
    def __init__(self, msg, start, cluster, valu=None):
        CorruptFileSystemError.__init__(self, msg)
        self.start = start
        self.cluster = cluster
        self.valu = valu


# size of the boot sector structure, and of the FS information sector
BOOT_SECTOR_SIZE = 0x200
FS_INFO_SIZE = 0x200

# size of an entry in the FAT32 directory data
FILE_ENTRY_SIZE = 0x20

# size of an entry in the FAT32 file allocation table
FAT_ENTRY_SIZE = 0x4

# mask of usable bits in a file allocation table entry
FAT_ENTRY_MASK = 0x0FFFFFFF

# the number of bytes reserved for 8.3 filenames
DIR_NAME_SIZE = 11

# clusters 0 and 1 hold the media descriptor and volume flags
FIRST_DATA_CLUSTER = 2

# BPB_FSInfo values meaning "no FS information sector"
NO_FS_INFO = (0x0, 0xFFFF)

FSI_LEAD_SIG = 0x41615252
FSI_STRUC_SIG = 0x61417272
FSI_TAIL_SIG = 0xAA550000


# reserved file allocation table entry values, after masking.
# via: https://staff.washington.edu/dittrich/misc/fatgen103.pdf
CLUSTER_TYPES = v_types.venum()
CLUSTER_TYPES.UNUSED = 0x0
CLUSTER_TYPES.RESERVED = 0x0FFFFFF0
CLUSTER_TYPES.BAD = 0x0FFFFFF7
CLUSTER_TYPES.LAST = 0x0FFFFFF8

# directory entry attributes. bit flags.
DIRECTORY_ATTRIBUTES = v_types.venum()
DIRECTORY_ATTRIBUTES.ATTR_READ_ONLY = 0x1
DIRECTORY_ATTRIBUTES.ATTR_HIDDEN = 0x2
DIRECTORY_ATTRIBUTES.ATTR_SYSTEM = 0x4
DIRECTORY_ATTRIBUTES.ATTR_VOLUME_ID = 0x8
DIRECTORY_ATTRIBUTES.ATTR_DIRECTORY = 0x10
DIRECTORY_ATTRIBUTES.ATTR_ARCHIVE = 0x20
DIRECTORY_ATTRIBUTES.ATTR_LONG_NAME = DIRECTORY_ATTRIBUTES.ATTR_READ_ONLY | \
        DIRECTORY_ATTRIBUTES.ATTR_HIDDEN | \
        DIRECTORY_ATTRIBUTES.ATTR_SYSTEM | \
        DIRECTORY_ATTRIBUTES.ATTR_VOLUME_ID

# first byte of DIR_Name
END_OF_DIRECTORY = 0x00
DELETED_ENTRY = 0xE5


def isEndOfChain(valu):
    return (valu & FAT_ENTRY_MASK) >= CLUSTER_TYPES.LAST


def isReservedCluster(valu):
    '''
    reserved and bad markers. neither a link nor a terminator.
    '''
    valu &= FAT_ENTRY_MASK
    return CLUSTER_TYPES.RESERVED <= valu < CLUSTER_TYPES.LAST


def isFreeCluster(valu):
    return (valu & FAT_ENTRY_MASK) == CLUSTER_TYPES.UNUSED


# via: https://staff.washington.edu/dittrich/misc/fatgen103.pdf
class BIOS_PARAMETER_BLOCK_FAT32(v_types.VStruct):
    '''
    always found at the first logical sector of the FAT32 file system.

    specifies the geometry of the file system, including things like:
      - cluster size
      - locations of data structures
      - file system label
    '''
    def __init__(self):
        super(BIOS_PARAMETER_BLOCK_FAT32, self).__init__()
        # for interpretation of these fields, please see:
        #  https://staff.washington.edu/dittrich/misc/fatgen103.pdf
        self.BPB_jmpBoot = v_types.vbytes(size=3)
        self.BPB_OEMName = v_types.vbytes(size=8)
        self.BPB_BytsPerSec = v_types.uint16()
        self.BPB_SecPerClus = v_types.uint8()
        self.BPB_RsvdSecCnt = v_types.uint16()
        self.BPB_NumFATs = v_types.uint8()
        self.BPB_RootEntCnt = v_types.uint16()
        self.BPB_TotSec16 = v_types.uint16()
        self.BPB_Media = v_types.uint8()
        self.BPB_FATSz16 = v_types.uint16()
        self.BPB_SecPerTrk = v_types.uint16()
        self.BPB_NumHeads = v_types.uint16()
        self.BPB_HiddSec = v_types.uint32()
        self.BPB_TotSec32 = v_types.uint32()

        # begin FAT32-specific fields
        # offset 36
        self.BPB_FATSz32 = v_types.uint32()
        self.BPB_ExtFlags = v_types.uint16()
        self.BPB_FSVer = v_types.uint16()
        self.BPB_RootClus = v_types.uint32()
        self.BPB_FSInfo = v_types.uint16()
        self.BPB_BkBootSec = v_types.uint16()
        self.BPB_Reserved = v_types.vbytes(size=12)
        self.BPB_DrvNum = v_types.uint8()
        self.BPB_Reserved1 = v_types.uint8()
        self.BPB_BootSig = v_types.uint8()
        self.BPB_VolID = v_types.uint32()
        self.BPB_VolLab = v_types.vbytes(size=11)
        self.BPB_FilSysType = v_types.vbytes(size=8)
        self.BPB_BootCode = v_types.vbytes(size=420)
        self.EndOfSectorMarker = v_types.uint16()

    @property
    def version(self):
        '''
        (major, minor) from BPB_FSVer.
        '''
        return (self.BPB_FSVer >> 8, self.BPB_FSVer & 0xFF)


# via: https://staff.washington.edu/dittrich/misc/fatgen103.pdf
class FS_INFO(v_types.VStruct):
    '''
    provides hints to the file system driver that help optimize performance.
    these values *may* be incorrect, and are never used for decisions here.
    '''
    def __init__(self):
        super(FS_INFO, self).__init__()
        self.FSI_LeadSig = v_types.uint32()
        self.FSI_Reserved1 = v_types.vbytes(size=480)
        self.FSI_StrucSig = v_types.uint32()
        self.FSI_Free_Count = v_types.uint32()
        self.FSI_Nxt_Free = v_types.uint32()
        self.FSI_Reserved2 = v_types.vbytes(size=12)
        self.FSI_TailSig = v_types.uint32()

    @property
    def is_valid(self):
        '''
        do all three signatures match?
        '''
        return self.FSI_LeadSig == FSI_LEAD_SIG and \
                self.FSI_StrucSig == FSI_STRUC_SIG and \
                self.FSI_TailSig == FSI_TAIL_SIG

    def validate(self):
        '''
        raise FormatError naming the first signature that does not match.
        called after parsing, by strict readers.
        '''
        if self.FSI_LeadSig != FSI_LEAD_SIG:
            raise FormatError('invalid FS_INFO LeadSig')
        if self.FSI_StrucSig != FSI_STRUC_SIG:
            raise FormatError('invalid FS_INFO StrucSig')
        if self.FSI_TailSig != FSI_TAIL_SIG:
            raise FormatError('invalid FS_INFO TailSig')


class Geometry:
    '''
    the volume layout, decoded once from the BIOS parameter block.
    immutable by convention.
    '''
    def __init__(self, bytes_per_sector, sectors_per_cluster, reserved_sectors, num_fats,
            hidden_sectors, sectors_per_fat, root_cluster, fs_info_sector, total_sectors=0):
        if bytes_per_sector == 0 or bytes_per_sector % FILE_ENTRY_SIZE != 0:
            raise FormatError('invalid bytes per sector: %d' % (bytes_per_sector))
        if sectors_per_cluster == 0:
            raise FormatError('invalid sectors per cluster: 0')
        if sectors_per_fat == 0:
            raise FormatError('invalid FAT size')

        self.bytes_per_sector = bytes_per_sector
        self.sectors_per_cluster = sectors_per_cluster
        self.reserved_sectors = reserved_sectors
        self.num_fats = num_fats
        self.hidden_sectors = hidden_sectors
        self.sectors_per_fat = sectors_per_fat
        self.root_cluster = root_cluster
        self.fs_info_sector = fs_info_sector
        self.total_sectors = total_sectors

    @classmethod
    def fromBootSector(cls, bpb):
        '''
        derive the geometry from a parsed BIOS_PARAMETER_BLOCK_FAT32.
        the legacy 16 bit sizes win when nonzero; the 32 bit ones are the fallback.

        type bpb: BIOS_PARAMETER_BLOCK_FAT32
        rtype: Geometry
        '''
        sectors_per_fat = bpb.BPB_FATSz16
        if sectors_per_fat == 0:
            sectors_per_fat = bpb.BPB_FATSz32
        if sectors_per_fat == 0:
            raise FormatError('invalid FAT size')

        total_sectors = bpb.BPB_TotSec16
        if total_sectors == 0:
            total_sectors = bpb.BPB_TotSec32
        if total_sectors == 0:
            raise FormatError('invalid total sector count')

        return cls(bpb.BPB_BytsPerSec, bpb.BPB_SecPerClus, bpb.BPB_RsvdSecCnt, bpb.BPB_NumFATs,
                bpb.BPB_HiddSec, sectors_per_fat, bpb.BPB_RootClus, bpb.BPB_FSInfo,
                total_sectors=total_sectors)

    @property
    def cluster_size(self):
        '''
        size of each cluster in bytes
        '''
        return self.sectors_per_cluster * self.bytes_per_sector

    @property
    def fat_offset(self):
        '''
        byte offset of the first allocation table from the start of the volume
        '''
        return self.reserved_sectors * self.bytes_per_sector

    @property
    def fat_entry_count(self):
        '''
        number of entries in each allocation table.
        '''
        return (self.sectors_per_fat * self.bytes_per_sector) // FAT_ENTRY_SIZE

    @property
    def data_sector(self):
        '''
        sector of cluster 2, the first data cluster
        '''
        return self.reserved_sectors + self.hidden_sectors + self.sectors_per_fat * self.num_fats

    @property
    def has_fs_info(self):
        return self.fs_info_sector not in NO_FS_INFO

    def clusterToSector(self, cluster):
        '''
        first sector of the given data cluster.

        type cluster: int
        rtype: int
        '''
        if cluster < FIRST_DATA_CLUSTER:
            raise IllegalArgumentException('cluster numbers start at 2: %d' % (cluster))
        return self.data_sector + (cluster - FIRST_DATA_CLUSTER) * self.sectors_per_cluster

    def clusterEndSector(self, cluster):
        '''
        last sector of the given data cluster.
        '''
        return self.clusterToSector(cluster) + self.sectors_per_cluster - 1

    def __str__(self):
        return 'Geometry (bps: %d spc: %d rsvd: %d fats: %d spf: %d root: %d)' % (
                self.bytes_per_sector, self.sectors_per_cluster, self.reserved_sectors,
                self.num_fats, self.sectors_per_fat, self.root_cluster)


def parseBootSector(byts):
    '''
    decode the boot sector bytes into (BIOS_PARAMETER_BLOCK_FAT32, Geometry).

    type byts: bytes
    rtype: Tuple[BIOS_PARAMETER_BLOCK_FAT32, Geometry]
    '''
    if len(byts) < BOOT_SECTOR_SIZE:
        raise FormatError('boot sector short: %d bytes' % (len(byts)))

    bpb = BIOS_PARAMETER_BLOCK_FAT32()
    bpb.vsParse(byts[:BOOT_SECTOR_SIZE])
    return bpb, Geometry.fromBootSector(bpb)


class FILE_ALLOCATION_TABLE(v_types.VStruct):
    '''
    key datastructure of FAT32. defines the allocation state of each
     cluster in the file system. also, defines logical data runs made
     up of possibly non-contiguous clusters.

    each entry in the table is 32bits long, of which the low 28 bits are used.
     there are a few reserved values. the remaining values are the number of
     the next cluster in the chain.

    example:
      cluster chain: 10, 13, 14, LAST

        +------------+
        | 10:  13    | --.
        +------------+   |
        | 11   UNUSED|   |
        +------------+   |
        | 12   UNUSED|   |
        +------------+ <-+
        | 13   14    | --.
        +------------+ <-+
        | 14   LAST  |
        +------------+

    the table is read-only. it is parsed as one run of bytes and decoded
     in bulk; entries are masked to 28 bits on every read.

    chain anomalies are collected in `anomalies`, once per (start, cluster),
     or raised when `strict` is set.
    '''
    def __init__(self, num_entries, strict=False):
        '''
        param num_entries: the number of entries in the table.
        type num_entries: int

        param strict: raise ChainAnomaly instead of recording it.
        type strict: bool
        '''
        super(FILE_ALLOCATION_TABLE, self).__init__()
        self.num_entries = num_entries
        self.strict = strict
        self.anomalies = []
        self._anomaly_keys = set()
        self._entries = (0,) * num_entries

        self.FAT_Entries = v_types.vbytes(size=num_entries * FAT_ENTRY_SIZE)
        self['FAT_Entries'].vsOnset(self._onEntriesParsed)

    def _onEntriesParsed(self):
        size = self.num_entries * FAT_ENTRY_SIZE
        byts = self.FAT_Entries.ljust(size, b'\x00')
        self._entries = struct.unpack_from('<%dI' % (self.num_entries,), byts)

    def entryAt(self, cluster):
        '''
        the masked table entry for the given cluster.

        type cluster: int
        rtype: int
        '''
        if not 0 <= cluster < self.num_entries:
            raise IndexError('FAT does not have requested entry: %d' % (cluster))
        return self._entries[cluster] & FAT_ENTRY_MASK

    def _anomaly(self, msg, start, cluster, valu=None):
        exc = ChainAnomaly(msg, start, cluster, valu)
        if self.strict:
            raise exc

        # chains are re-followed by every reader; report each break once
        key = (start, cluster)
        if key in self._anomaly_keys:
            return

        self._anomaly_keys.add(key)
        logger.warning('fat: chain anomaly: start: %x cluster: %x: %s', start, cluster, msg)
        self.anomalies.append(exc)

    def iterClusterChain(self, start_cluster_num):
        '''
        lazily yield the cluster numbers that make up the chain starting at
         the given cluster. a start of 0 is an empty chain.

        the chain stops at an end-of-chain marker. it also stops, with a
         ChainAnomaly, on a reserved/bad marker, a free entry, a link outside
         the table, or a link back to a cluster already yielded.

        param start_cluster_num: the first cluster number in the chain
        type start_cluster_num: int

        rtype: Iterator[int]
        '''
        start = start_cluster_num & FAT_ENTRY_MASK
        if start == CLUSTER_TYPES.UNUSED:
            return

        if not FIRST_DATA_CLUSTER <= start < self.num_entries:
            self._anomaly('start cluster outside table', start, start)
            return

        seen = set()
        cluster = start
        while True:
            seen.add(cluster)
            yield cluster

            nxt = self.entryAt(cluster)
            if isEndOfChain(nxt):
                return

            if isReservedCluster(nxt):
                self._anomaly('reserved cluster marker', start, cluster, nxt)
                return

            if nxt < FIRST_DATA_CLUSTER:
                self._anomaly('link to free cluster', start, cluster, nxt)
                return

            if nxt >= self.num_entries:
                self._anomaly('link outside table', start, cluster, nxt)
                return

            if nxt in seen:
                self._anomaly('cluster chain loop', start, cluster, nxt)
                return

            cluster = nxt

    def getClusterChain(self, start_cluster_num):
        '''
        get a list of the cluster numbers that make up a cluster run.

        rtype: List[int]
        '''
        return list(self.iterClusterChain(start_cluster_num))

    def maxReferencedCluster(self):
        '''
        full table scan for the highest cluster in use: either allocated
         (a link or end-of-chain entry) or the target of a link.
        independent of directory reachability, so orphaned chains count.
        never less than 2.

        rtype: int
        '''
        ret = FIRST_DATA_CLUSTER
        for i in range(FIRST_DATA_CLUSTER, self.num_entries):
            valu = self._entries[i] & FAT_ENTRY_MASK
            if isFreeCluster(valu) or isReservedCluster(valu):
                continue

            ret = max(ret, i)
            if isEndOfChain(valu):
                continue

            if valu >= self.num_entries:
                logger.debug('fat: scan: link outside table: %x -> %x', i, valu)
                continue

            ret = max(ret, valu)

        logger.debug('fat: scan: max cluster: %x', ret)
        return ret


# via: https://staff.washington.edu/dittrich/misc/fatgen103.pdf
class DIRECTORY_ENTRY(v_types.VStruct):
    '''
    single entry in a directory data run.
    length is 32 bytes on FAT32.
    '''
    def __init__(self):
        super(DIRECTORY_ENTRY, self).__init__()
        # 8 bytes of ASCII for the basename, 3 bytes for the extension.
        # period is implicit. left-justified, space padded.
        self.DIR_Name = v_types.vbytes(size=DIR_NAME_SIZE)
        self.DIR_Attr = v_types.uint8(enum=DIRECTORY_ATTRIBUTES)
        self.DIR_NTRes = v_types.vbytes(size=1)
        self.DIR_CrtTimeTenth = v_types.vbytes(size=1)
        self.DIR_CrtTime = v_types.vbytes(size=2)
        self.DIR_CrtDate = v_types.vbytes(size=2)
        self.DIR_LstAccDate = v_types.vbytes(size=2)
        self.DIR_FstClusHI = v_types.uint16()
        self.DIR_WrtTime = v_types.vbytes(size=2)
        self.DIR_WrtDate = v_types.vbytes(size=2)
        self.DIR_FstClusLO = v_types.uint16()
        self.DIR_FileSize = v_types.uint32()

    @property
    def is_end(self):
        '''
        does this entry mark the end of the directory?
        '''
        return self.DIR_Name[0] == END_OF_DIRECTORY

    @property
    def is_deleted(self):
        return self.DIR_Name[0] == DELETED_ENTRY

    @property
    def is_vacant(self):
        '''
        the first name byte is not printable ASCII. covers deleted entries
         and the end marker.
        '''
        return not 0x20 <= self.DIR_Name[0] <= 0x7E

    @property
    def is_long_name(self):
        '''
        is this directory entry actually a long name fragment?
        if so, you should not interpret its contents using this structure.
        '''
        return self.DIR_Attr == DIRECTORY_ATTRIBUTES.ATTR_LONG_NAME

    @property
    def is_directory(self):
        return bool(self.DIR_Attr & DIRECTORY_ATTRIBUTES.ATTR_DIRECTORY)

    @property
    def is_dot(self):
        '''
        is this the "." or ".." entry of a subdirectory?
        '''
        name = self.DIR_Name
        if name[0:1] != b'.':
            return False
        if name[1:2] == b' ':
            return True
        return name[1:3] == b'. '

    @property
    def basename(self):
        return self.DIR_Name[:0x8]

    @property
    def extension(self):
        return self.DIR_Name[0x8:]

    @property
    def raw_name(self):
        '''
        the 8 and 3 byte name fields joined by a period, padding kept.
        '''
        return (self.basename + b'.' + self.extension).decode('latin-1')

    @property
    def name(self):
        '''
        reconstruct the 8.3 name for this directory entry.
        '''
        if self.is_vacant:
            return ''

        name = self.basename.rstrip(b' ')
        ext = self.extension.rstrip(b' ')
        if len(ext) > 0:
            name = name + b'.' + ext
        return name.decode('latin-1')

    @property
    def first_cluster(self):
        '''
        get the local cluster number of the data for this entry.

        rtype: int
        '''
        return (self.DIR_FstClusHI << 16) | self.DIR_FstClusLO

    def __str__(self):
        if self.is_vacant:
            return 'DIRECTORY_ENTRY (free)'
        elif self.is_long_name:
            return 'DIRECTORY_ENTRY (long name)'
        else:
            return 'DIRECTORY_ENTRY (name: %s)' % (self.name)


class DIRECTORY_DATA(v_types.VArray):
    '''
    On disk, a sequence of DIRECTORY_ENTRYs. Parsed one sector at a time.
    '''
    def __init__(self, num_entries):
        '''
        param num_entries: the number of DIRECTORY_ENTRYs that should be found in this region.
        type num_entries: int
        '''
        super(DIRECTORY_DATA, self).__init__(fields=[DIRECTORY_ENTRY() for _ in range(num_entries)])
        self.num_entries = num_entries

    @property
    def entries(self):
        '''
        the DIRECTORY_ENTRYs in this DIRECTORY_DATA.

        rtype: Sequence[DIRECTORY_ENTRY]
        '''
        for i in range(self.num_entries):
            yield self[i]
