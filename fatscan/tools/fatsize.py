import sys
import logging
import argparse

import fatscan.usage as f_usage
import fatscan.walker as f_walker
import fatscan.volume as f_volume
import fatscan.formats.fat32 as fat32

from fatscan.common import *

logger = logging.getLogger(__name__)

def geometryRows(lab):
    bpb = lab['bpb']
    geo = lab['geometry']
    rows = [
        ('name', bpb.BPB_OEMName.decode('latin-1')),
        ('bytes per sector', str(geo.bytes_per_sector)),
        ('sectors per cluster', str(geo.sectors_per_cluster)),
        ('reserved sectors', str(geo.reserved_sectors)),
        ('allocation tables', str(geo.num_fats)),
        ('media type', '%.2x' % (bpb.BPB_Media,)),
        ('hidden sectors', str(geo.hidden_sectors)),
        ('sectors per FAT', str(geo.sectors_per_fat)),
        ('total sectors', '%d (%dK)' % (geo.total_sectors, geo.total_sectors * geo.bytes_per_sector // 1024)),
        ('version', '%d.%d' % bpb.version),
        ('root cluster', str(geo.root_cluster)),
        ('FS information sector', str(geo.fs_info_sector)),
        ('backup boot sector', str(bpb.BPB_BkBootSec)),
        ('filesystem type', bpb.BPB_FilSysType.decode('latin-1')),
    ]
    return rows

def fsInfoRows(fsinfo):
    rows = [
        ('signature 1', '%.8x' % (fsinfo.FSI_LeadSig,)),
        ('signature 2', '%.8x' % (fsinfo.FSI_StrucSig,)),
        ('free clusters', '%d (0x%.8x)' % (fsinfo.FSI_Free_Count, fsinfo.FSI_Free_Count)),
        ('next cluster', '%d (0x%.8x)' % (fsinfo.FSI_Nxt_Free, fsinfo.FSI_Nxt_Free)),
        ('signature 3', '%.8x' % (fsinfo.FSI_TailSig,)),
    ]
    return rows

def report(lab, quiet=False, out=None):
    if out is None:
        out = sys.stdout

    print('Boot Sector', file=out)
    print(colify(geometryRows(lab), titles=('field', 'value')), file=out)

    fsinfo = lab.get('fsinfo')
    if fsinfo is not None:
        print('FS Information Sector', file=out)
        print(colify(fsInfoRows(fsinfo), titles=('field', 'value')), file=out)

    result = f_walker.WalkResult()
    for depth, entry in f_walker.iterTree(lab, result):
        if not quiet:
            print('=' * depth + entry.raw_name, file=out)

    usage = f_usage.estimateUsage(lab, walk_max=result.max_cluster)

    print('Max cluster: %d' % (usage.table_max,), file=out)
    print('Max clusterF: %d' % (usage.walk_max,), file=out)
    print('End size: %d' % (usage.size,), file=out)
    print('Files: %d' % (result.count,), file=out)

    anomalies = lab['fat'].anomalies + result.anomalies
    if anomalies:
        print('Chain anomalies: %d' % (len(anomalies),), file=out)

    return usage

def main(argv):

    p = argparse.ArgumentParser(description='report the tree and minimal size of a FAT32 volume image')
    p.add_argument('-v', '--verbose', default=False, action='store_true', help='enable debug logging')
    p.add_argument('--strict', default=False, action='store_true', help='fail on chain anomalies and bad FS info signatures')
    p.add_argument('--quiet', default=False, action='store_true', help='do not list directory entries')
    p.add_argument('--offset', default=0, type=int, help='byte offset of the volume within the image')
    p.add_argument('image', help='raw FAT32 volume image')

    args = p.parse_args(argv)

    level = logging.WARNING
    if args.verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level)

    try:
        with open(args.image, 'rb') as fd:
            lab = f_volume.Fat32Lab(fd, off=args.offset, strict=args.strict)
            report(lab, quiet=args.quiet)

    except (fat32.CorruptFileSystemError, IOError) as e:
        print('%s: %s' % (args.image, e), file=sys.stderr)
        return 1

    return 0

if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
