"""File gateway module.

Serves stored files to browsers on behalf of the media service. Access is
either by a signed capability link (``signing.SignedURLIssuer``) or, for
signed-in users, by storage key.
"""
