#!/usr/bin/env python3
from setuptools import setup, find_packages

from pathlib import Path


version = {}
exec((Path(__file__).parent / 'src' / 'teasolver' / '__init__.py').read_text(), version)

setup(
    name='teasolver',
    version=version['version'],
    description='differential key recovery for a TEA-variant half-round',
    packages=find_packages('src'),
    package_dir={'': 'src'},
    package_data={'teasolver': ['log_config.json']},
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'click',
        'tqdm',
    ],
    extras_require={
        'embed': ['ipython'],
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'teasolver = teasolver.teasolver:cli',
            'teasolver-generate = teasolver.teasolver:generate',
        ],
    },
)
