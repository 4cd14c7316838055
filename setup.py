#!/usr/bin/env python
from setuptools import setup,find_packages

# For Testing:
#
# python3 -m unittest discover -s fatscan/tests -t .
#
# For Realz:
#
# python3 setup.py bdist_wheel
# python3 -m pip install dist/fatscan-*.whl

import fatscan

setup(
    name='fatscan',
    version='.'.join( str(v) for v in fatscan.__version__ ),
    description='FAT32 volume image tree and minimal size scanner',
    license='Apache License 2.0',

    packages=find_packages(exclude=['*.tests','*.tests.*']),

    install_requires=[
        'vstruct2>=2.0.2',
    ],

    classifiers=[
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
    ],

)
