#!/usr/bin/env python

import os
import re
from setuptools import setup, find_packages

work_dir = os.path.dirname(os.path.realpath(__file__))
mod_dir = os.path.join(work_dir, 'src', 'kafka_dispatch')

INSTALL_REQUIRES = [
    'confluent-kafka>=2.3.0',
]

TESTS_REQUIRES = [
    'pytest',
]


def get_version():
    with open(os.path.join(mod_dir, '__init__.py'), 'r') as init_file:
        match = re.search(r"^__version__ = ['\"]([^'\"]+)['\"]", init_file.read(), re.M)
    if match is None:
        raise RuntimeError('Unable to find __version__ in {}'.format(mod_dir))
    return match.group(1)


setup(
    name='kafka-dispatch',
    version=get_version(),
    description='Fluent producer and consumer builders over confluent-kafka, with an in-memory test fake',
    license='Apache License, Version 2.0',
    python_requires='>=3.8',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    install_requires=INSTALL_REQUIRES,
    extras_require={
        'tests': TESTS_REQUIRES,
    },
)
