#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Exceptions
#

class GlyphError(RuntimeError):
    pass

class EncodingError(GlyphError):
    # payload malformed or missing a required field; nothing was sent
    pass

class DecodingError(GlyphError):
    pass

class MalformedReferenceError(GlyphError):
    pass

class SigningError(GlyphError):
    # must block broadcast
    pass

class MintStateError(GlyphError):
    pass

class RejectedByNetworkError(GlyphError):
    def __init__(self, reason, category='unknown'):
        self.reason = reason
        self.category = category
        super().__init__(f'{category}: {reason}')

# EOF
