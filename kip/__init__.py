"""
kip - Command-line password manager (one encrypted file per account)

Every account lives in its own file inside a single directory, named after
the account. Files only ever hold ciphertext; encryption is delegated to an
external tool (gpg by default) or the built-in passphrase cipher.

Key Features:
- Flat layout: ~/.kip/passwords/<account>, easy to back up or sync
- Partial names: "kip ebay" finds ebay.com, asks when several files match
- Clipboard: passwords go to the clipboard, not the screen
- Generator: random passwords from a configurable character set

Components:
- entry.py: Entry record and its plaintext format
- crypto.py: Password generator and built-in AES-GCM cipher
- resolver.py: Map a partial name to exactly one file
- tools.py: Cipher, clipboard and prompt capabilities
- store.py: The get/add/edit/del/list/gen operations
- config.py: Layered INI configuration and logging

Usage:
    kip ebay.com                          # Copy password, show user + notes
    kip add ebay.com -u graham -n "Notes" # Generate and store a password
    kip edit ebay --notes "New notes"     # Change only what you provide
    kip del ebay.com                      # Delete (asks first)
    kip list [prefix]                     # List accounts
    kip gen                               # Generate, print and copy
"""

__version__ = "0.3.0"
__author__ = "kip contributors"
