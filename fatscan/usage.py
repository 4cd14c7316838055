'''
Minimal image size estimation.
'''
import logging


logger = logging.getLogger(__name__)


class Usage:
    '''
    the highest cluster in use and the byte length that still contains it.

    the size is advisory: truncating to it is only safe if no allocated
     cluster beyond it went unnoticed by both the table scan and the walk.
    '''
    def __init__(self, table_max, walk_max, max_cluster, end_sector, size):
        self.table_max = table_max
        self.walk_max = walk_max
        self.max_cluster = max_cluster
        self.end_sector = end_sector
        self.size = size

    def __str__(self):
        return 'Usage (max cluster: %x end sector: %x size: %d)' % (self.max_cluster, self.end_sector, self.size)


def estimateUsage(lab, walk_max=0):
    '''
    combine the allocation table scan with the walk maximum.

    param walk_max: WalkResult.max_cluster, or 0 to rely on the table alone
    type walk_max: int

    rtype: Usage
    '''
    geo = lab['geometry']
    table_max = lab['fat'].maxReferencedCluster()
    max_cluster = max(table_max, walk_max)

    end_sector = geo.clusterEndSector(max_cluster)
    size = (end_sector + 1) * geo.bytes_per_sector

    usage = Usage(table_max, walk_max, max_cluster, end_sector, size)
    logger.debug('usage: %s', usage)
    return usage
