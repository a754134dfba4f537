# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
gerritlink: browse, review and act on Gerrit changes over the REST API.
"""

__version__ = "0.1.0"
