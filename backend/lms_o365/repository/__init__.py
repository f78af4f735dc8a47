"""Office 365 file repository.

Modules:
    - references: packed file references
    - listing: API folder contents to file picker listings
    - office365: browse, upload, download and link to files
"""

from lms_o365.repository.office365 import Office365Repository
from lms_o365.repository.references import pack_reference, unpack_reference

__all__ = ["Office365Repository", "pack_reference", "unpack_reference"]
