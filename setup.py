#!/usr/bin/env python

from setuptools import setup, find_packages
import eulbatch

LONG_DESCRIPTION = None
try:
    # read the description if it's there
    with open('README.rst') as desc_f:
        LONG_DESCRIPTION = desc_f.read()
except IOError:
    pass

CLASSIFIERS = [
    'Development Status :: 4 - Beta',
    'Environment :: Console',
    'Intended Audience :: System Administrators',
    'License :: OSI Approved :: Apache Software License',
    'Natural Language :: English',
    'Operating System :: OS Independent',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Software Development :: Libraries :: Python Modules',
]

requirements = [
    'requests>2.9',
    'requests-toolbelt>=0.6.0',
    'progressbar2',
]

test_requirements = [
    'pytest',
    'mock',
    'coverage',
]

dev_requirements = test_requirements + [
    'sphinx',
]


setup(
    name='eulbatch',
    version=eulbatch.__version__,
    author='Emory University Libraries',
    author_email='libsysdev-l@listserv.cc.emory.edu',
    url='https://github.com/emory-libraries/eulbatch',
    license='Apache License, Version 2.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=requirements,
    extras_require={
        'test': test_requirements,
        'dev': dev_requirements,
    },
    description='Resumable batch maintenance for Islandora repository sites',
    long_description=LONG_DESCRIPTION,
    classifiers=CLASSIFIERS,
    scripts=['scripts/eulbatch'],
)
