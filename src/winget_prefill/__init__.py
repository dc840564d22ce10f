"""Manifest pre-fill pipeline for package registry submissions.

Resolves publisher, license, description and installer metadata for a new
package manifest from three sources: explicit user input, metadata detected
from the hosting platform's release API, and the previous version's manifest
files stored in the package registry.
"""

__version__ = "0.1.0"
