'''
Depth-first walk of the directory tree of a FAT32 volume.
'''
import logging

import fatscan.formats.fat32 as fat32

from fatscan.volume import File


logger = logging.getLogger(__name__)


class WalkResult:
    '''
    running totals of a tree walk.

    count: real entries seen ("." and ".." excluded).
    max_cluster: highest cluster on any chain followed during the walk.
    anomalies: ChainAnomaly instances for directories that were not entered.
    '''
    def __init__(self):
        self.count = 0
        self.max_cluster = 0
        self.anomalies = []

    def observeChain(self, fat, start_cluster_num):
        '''
        follow a chain through the allocation table, raising max_cluster.
        '''
        for cluster in fat.iterClusterChain(start_cluster_num):
            if cluster > self.max_cluster:
                self.max_cluster = cluster

    def __str__(self):
        return 'WalkResult (count: %d max cluster: %x)' % (self.count, self.max_cluster)


def _enterDirectory(lab, result, entry, ancestors):
    cluster = entry.first_cluster
    if cluster < fat32.FIRST_DATA_CLUSTER:
        logger.debug('walk: directory without clusters: %s', entry.name)
        return False

    if cluster in ancestors:
        exc = fat32.ChainAnomaly('directory aliases an ancestor: %s' % (entry.name,), cluster, cluster)
        if lab.strict:
            raise exc
        logger.warning('walk: directory aliases an ancestor: name: %s cluster: %x', entry.name, cluster)
        result.anomalies.append(exc)
        return False

    return True


def iterDirectory(lab, directory, result, depth=0, ancestors=frozenset()):
    '''
    walk one directory and everything below it, yielding (depth, entry) for
     every record that names something, "." and ".." included.

    vacant records (first name byte not printable) and long name fragments
     are skipped. "." and ".." are neither counted nor entered. every other
     record is counted, has its chain followed into result.max_cluster, and
     is descended into if it is a directory not already on the current path.

    type directory: File
    type result: WalkResult
    '''
    fat = lab['fat']
    ancestors = ancestors | {directory.cluster_number}

    for entry in directory.getEntries():
        if entry.is_vacant or entry.is_long_name:
            continue

        yield depth, entry

        if entry.is_dot:
            continue

        result.count += 1
        result.observeChain(fat, entry.first_cluster)

        if entry.is_directory and _enterDirectory(lab, result, entry, ancestors):
            subdir = File.fromEntry(lab, entry)
            yield from iterDirectory(lab, subdir, result, depth=depth + 1, ancestors=ancestors)


def iterTree(lab, result):
    '''
    walk the whole tree from the root directory, filling `result`.

    Example:

        result = WalkResult()
        for depth, entry in iterTree(lab, result):
            print('=' * depth + entry.raw_name)
        print(result.count)

    type result: WalkResult
    rtype: Iterator[Tuple[int, fat32.DIRECTORY_ENTRY]]
    '''
    root = lab.getRootDirectory()
    logger.debug('walk: root: cluster: %x size: %x', root.cluster_number, root.size)
    result.observeChain(lab['fat'], root.cluster_number)
    return iterDirectory(lab, root, result)


def walkTree(lab):
    '''
    walk the whole tree and return the totals.

    rtype: WalkResult
    '''
    result = WalkResult()
    for _ in iterTree(lab, result):
        pass

    logger.debug('walk: done: %s', result)
    return result
