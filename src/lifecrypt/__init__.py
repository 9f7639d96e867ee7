"""lifecrypt - A password-protected single-file vault.
Edits plaintext in an external editor; persists only scrypt + ChaCha20-Poly1305
ciphertext via pynacl.
"""

__version__ = "1.0.0"
