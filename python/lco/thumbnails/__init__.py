# This file is part of lco-thumbnails.
#
# Developed for the LSST Data Management System.
# This product includes software developed by the LSST Project
# (https://www.lsst.org).
# See the COPYRIGHT file at the top-level directory of this distribution
# for details of code ownership.
#
# Use of this source code is governed by a 3-clause BSD-style
# license that can be found in the LICENSE file.

"""Decoding of tile-compressed FITS frames from the LCO archive.

The decoder itself lives in `lco.thumbnails.fits`; the HTTP service that
looks frames up in the archive and reports on them is in
`lco.thumbnails.service`, and is not imported here.
"""

from ._image import *
from .fits import (
    FitsDecodeError,
    HeaderKeyNotFoundError,
    HeaderTypeMismatchError,
    NoImageHDUError,
    TruncatedDataError,
    TruncatedHeaderError,
    UnsupportedDataTypeError,
    decode,
)
from .version import __version__
