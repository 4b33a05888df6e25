"""
Bank hash reconstruction: account hashing, accounts delta Merkle tree and
the Update wire format.
"""
