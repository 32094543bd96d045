#
# Copyright 2024 gfxbundle Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Variant matrix configuration for gfxbundle.
"""

from .config import Variant, VariantMatrix, load_variant_matrix, normalize_arch

__all__ = ['Variant', 'VariantMatrix', 'load_variant_matrix', 'normalize_arch']
