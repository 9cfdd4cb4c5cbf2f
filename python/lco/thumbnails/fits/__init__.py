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

"""A minimal reader for tile-compressed FITS images.

A FITS file is a sequence of HDUs, each a header block followed by a data
block:

- Headers are runs of 80-character ASCII cards (``KEYWORD = value /
  comment``) terminated by an ``END`` card and padded with blanks to a
  multiple of 2880 bytes.

- The size of each data block follows from the mandatory ``BITPIX``,
  ``NAXISn``, ``PCOUNT`` and ``GCOUNT`` keywords; data blocks are also padded
  to a multiple of 2880 bytes.

- A tile-compressed image (e.g. a ``.fits.fz`` file written by ``fpack``) is
  stored as a binary table extension with ``ZIMAGE = T``.  Each table row
  holds one tile as a variable-length byte array in its ``COMPRESSED_DATA``
  column, and the ``Z*`` keywords describe the original image: ``ZNAXISn``
  for its dimensions, ``ZTILEn`` for the tile shape, ``ZCMPTYPE`` for the
  compression algorithm and ``ZQUANTIZ``/``ZSCALE``/``ZZERO`` for the
  quantization of floating-point pixels.

Only reading is supported, and only of the first image plane of the first
binary table HDU; see `decode`.
"""

from ._bintable import *
from ._codecs import *
from ._common import *
from ._decode import *
from ._header import *
from ._quantization import *
from ._scanner import *
