"""Authentication module.

Session cookies and file capability links share one token format
(``tokens.TokenCodec``); the token ``type`` decides where a token is
accepted. Login attempts are throttled per client address before any
credential check.
"""
