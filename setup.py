#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
#
# Glyph NFT commit/reveal transaction builder and verifier
#

# To use this command to install and yet be able to edit the code (here). Great for dev:
#
#   pip install --editable .
#
# with cli dependencies
#
#   pip install --editable '.[cli]'
#
# with test dependencies
#
#   pip install --editable '.[test]'
#
#
import re
from setuptools import setup

# read version without importing package (needs deps installed)
with open("glyphmint/__init__.py", "r") as fh:
    __version__ = re.search(r"^__version__ = '([^']+)'", fh.read(), re.M).group(1)

# these minimum versions are tested, some earlier values would probably work too.
requirements = [
    'cbor2>=5.4.1',
    'coincurve>=15.0.1',
    'base58>=2.1.0',
]

requests_socks = 'requests[socks]>=2.26.0'

cli_requirements = [
    'click>=8.0.3',
    requests_socks,
]

test_requirements = [
    'pytest',
    'click>=8.0.3',
    requests_socks,
]

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='glyph-mint',
    version=__version__,
    packages=[ 'glyphmint' ],
    python_requires='>3.6.0',
    install_requires=requirements,
    extras_require={
        'cli': cli_requirements,
        'test': test_requirements,
    },
    description="Build and sign commit/reveal Glyph NFT transactions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    entry_points='''
        [console_scripts]
        glyphmint=glyphmint.cli:main
    ''',
    classifiers=[
        'Operating System :: POSIX :: Linux',
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS :: MacOS X',
    ],
)
