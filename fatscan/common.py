'''
Helpers shared by the volume parser and the command line tools.
'''

class OnDemand(dict):
    '''
    A dict whose values are built by registered constructors the first
    time their key is read, then cached.

    Example:

        class VolLab(FileLab):

            def __init__(self, fd, off=0):
                FileLab.__init__(self, fd, off=off)
                self.add('geometry', self._getGeometry)

            def _getGeometry(self):
                return Geometry.fromBootSector(self['bpb'])

        vol = VolLab(fd)
        print(vol['geometry'].cluster_size)

    A constructor that raises caches nothing; the next read retries it.
    '''
    def __init__(self):
        dict.__init__(self)
        self._ctors = {}

    def add(self, name, ctor, *args, **kwargs):
        self._ctors[name] = (ctor, args, kwargs)

    def get(self, name, defval=None):
        '''
        Like self[name], but a None result (or an unknown name) gives defval.

        Example:

            fsinfo = vol.get('fsinfo')
        '''
        if name not in self and name not in self._ctors:
            return defval

        valu = self[name]
        if valu is None:
            return defval
        return valu

    def set(self, name, valu):
        self[name] = valu

    def __missing__(self, name):
        if name not in self._ctors:
            raise KeyError(name)

        ctor, args, kwargs = self._ctors[name]
        valu = ctor(*args, **kwargs)
        self[name] = valu
        return valu


def colify(rows, titles=None):
    '''
    Lay out rows of strings as a ruled, left-justified text table.

    Example:

        rows = [
            ('bytes per sector', '512'),
            ('sectors per cluster', '8'),
        ]
        print(colify(rows, titles=('field', 'value')))
    '''
    table = list(rows)
    if titles is not None:
        table.insert(0, titles)

    widths = [ max(len(cell) for cell in col) for col in zip(*table) ]
    rule = '-' * (sum(widths) + 3 * len(widths))

    def line(row):
        return ' | '.join( cell.ljust(width) for cell, width in zip(row, widths) )

    lines = [rule]
    if titles is not None:
        lines.append(line(titles))
        lines.append(rule)

    lines.extend( line(row) for row in rows )
    lines.append(rule)
    return '\n'.join(lines)
