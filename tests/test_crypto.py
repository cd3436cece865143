import secrets
import unittest

from cryptography.hazmat.primitives.ciphers import Cipher, modes

try:
    from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
except ImportError:  # cryptography < 43
    from cryptography.hazmat.primitives.ciphers.algorithms import TripleDES

from ppfcpi.chaining import (
    AIRI_KEY,
    OUTER_KEY,
    des_cbc_encrypt,
    triple_des_cbc_encrypt,
    vendor_pad,
)
from ppfcpi.chunks import decode_children, decode_chunks
from ppfcpi.des import (
    SP_BOXES,
    adjust_parity,
    decrypt_block,
    encrypt_block,
    final_permutation,
    initial_permutation,
    key_schedule,
)
from ppfcpi.devicelock import (
    CSEC_LEN,
    build_locked_csec,
    derive_key_slot,
    derive_second_block,
    expand_key,
)
from ppfcpi.errors import StructuralError
from ppfcpi.main import ppfcpi

# FIPS 46-3 tables, used only to check the fused SP tables and the delta-swap permutations.
S_BOXES = (
    (14, 4, 13, 1, 2, 15, 11, 8, 3, 10, 6, 12, 5, 9, 0, 7,
     0, 15, 7, 4, 14, 2, 13, 1, 10, 6, 12, 11, 9, 5, 3, 8,
     4, 1, 14, 8, 13, 6, 2, 11, 15, 12, 9, 7, 3, 10, 5, 0,
     15, 12, 8, 2, 4, 9, 1, 7, 5, 11, 3, 14, 10, 0, 6, 13),
    (15, 1, 8, 14, 6, 11, 3, 4, 9, 7, 2, 13, 12, 0, 5, 10,
     3, 13, 4, 7, 15, 2, 8, 14, 12, 0, 1, 10, 6, 9, 11, 5,
     0, 14, 7, 11, 10, 4, 13, 1, 5, 8, 12, 6, 9, 3, 2, 15,
     13, 8, 10, 1, 3, 15, 4, 2, 11, 6, 7, 12, 0, 5, 14, 9),
    (10, 0, 9, 14, 6, 3, 15, 5, 1, 13, 12, 7, 11, 4, 2, 8,
     13, 7, 0, 9, 3, 4, 6, 10, 2, 8, 5, 14, 12, 11, 15, 1,
     13, 6, 4, 9, 8, 15, 3, 0, 11, 1, 2, 12, 5, 10, 14, 7,
     1, 10, 13, 0, 6, 9, 8, 7, 4, 15, 14, 3, 11, 5, 2, 12),
    (7, 13, 14, 3, 0, 6, 9, 10, 1, 2, 8, 5, 11, 12, 4, 15,
     13, 8, 11, 5, 6, 15, 0, 3, 4, 7, 2, 12, 1, 10, 14, 9,
     10, 6, 9, 0, 12, 11, 7, 13, 15, 1, 3, 14, 5, 2, 8, 4,
     3, 15, 0, 6, 10, 1, 13, 8, 9, 4, 5, 11, 12, 7, 2, 14),
    (2, 12, 4, 1, 7, 10, 11, 6, 8, 5, 3, 15, 13, 0, 14, 9,
     14, 11, 2, 12, 4, 7, 13, 1, 5, 0, 15, 10, 3, 9, 8, 6,
     4, 2, 1, 11, 10, 13, 7, 8, 15, 9, 12, 5, 6, 3, 0, 14,
     11, 8, 12, 7, 1, 14, 2, 13, 6, 15, 0, 9, 10, 4, 5, 3),
    (12, 1, 10, 15, 9, 2, 6, 8, 0, 13, 3, 4, 14, 7, 5, 11,
     10, 15, 4, 2, 7, 12, 9, 5, 6, 1, 13, 14, 0, 11, 3, 8,
     9, 14, 15, 5, 2, 8, 12, 3, 7, 0, 4, 10, 1, 13, 11, 6,
     4, 3, 2, 12, 9, 5, 15, 10, 11, 14, 1, 7, 6, 0, 8, 13),
    (4, 11, 2, 14, 15, 0, 8, 13, 3, 12, 9, 7, 5, 10, 6, 1,
     13, 0, 11, 7, 4, 9, 1, 10, 14, 3, 5, 12, 2, 15, 8, 6,
     1, 4, 11, 13, 12, 3, 7, 14, 10, 15, 6, 8, 0, 5, 9, 2,
     6, 11, 13, 8, 1, 4, 10, 7, 9, 5, 0, 15, 14, 2, 3, 12),
    (13, 2, 8, 4, 6, 15, 11, 1, 10, 9, 3, 14, 5, 0, 12, 7,
     1, 15, 13, 8, 10, 3, 7, 4, 12, 5, 6, 11, 0, 14, 9, 2,
     7, 11, 4, 1, 9, 12, 14, 2, 0, 6, 10, 13, 15, 3, 5, 8,
     2, 1, 14, 7, 4, 10, 8, 13, 15, 12, 9, 0, 3, 5, 6, 11),
)
P = (
    16, 7, 20, 21, 29, 12, 28, 17, 1, 15, 23, 26, 5, 18, 31, 10,
    2, 8, 24, 14, 32, 27, 3, 9, 19, 13, 30, 6, 22, 11, 4, 25,
)
IP = (
    58, 50, 42, 34, 26, 18, 10, 2, 60, 52, 44, 36, 28, 20, 12, 4,
    62, 54, 46, 38, 30, 22, 14, 6, 64, 56, 48, 40, 32, 24, 16, 8,
    57, 49, 41, 33, 25, 17, 9, 1, 59, 51, 43, 35, 27, 19, 11, 3,
    61, 53, 45, 37, 29, 21, 13, 5, 63, 55, 47, 39, 31, 23, 15, 7,
)


def _permute(value: int, table, width: int) -> int:
    out = 0
    for pos in table:
        out = (out << 1) | ((value >> (width - pos)) & 1)
    return out


def _reference_cbc(data: bytes, key: bytes) -> bytes:
    if len(key) == 8:
        key = key * 3
    encryptor = Cipher(TripleDES(key), modes.CBC(bytes(8))).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def _cbc_decrypt(data: bytes, key: bytes) -> bytes:
    subkeys = key_schedule(adjust_parity(key))
    out = bytearray()
    prev = bytes(8)
    for offset in range(0, len(data), 8):
        block = data[offset:offset + 8]
        plain = decrypt_block(block, subkeys)
        out += bytes(a ^ b for a, b in zip(plain, prev))
        prev = block
    return bytes(out)


class DesCoreTests(unittest.TestCase):
    """Block cipher: tables, permutations, key schedule and known answers."""

    def test_known_answer(self):
        key = bytes.fromhex("133457799bbcdff1")
        self.assertEqual(adjust_parity(key), key)
        ciphertext = encrypt_block(bytes.fromhex("0123456789abcdef"), key_schedule(key))
        self.assertEqual(ciphertext, bytes.fromhex("85e813540f0ab405"))

    def test_zero_key_zero_block(self):
        key = adjust_parity(bytes(8))
        self.assertEqual(key, b"\x80" * 8)
        self.assertEqual(
            encrypt_block(bytes(8), key_schedule(key)),
            _reference_cbc(bytes(8), key),
        )

    def test_sp_tables_match_sbox_and_p(self):
        for box_index, sbox in enumerate(S_BOXES):
            for group in range(64):
                row = ((group >> 4) & 0b10) | (group & 1)
                col = (group >> 1) & 0xF
                nibble = sbox[row * 16 + col]
                pre = nibble << (28 - 4 * box_index)
                self.assertEqual(
                    SP_BOXES[box_index][group],
                    _permute(pre, P, 32),
                    f"S{box_index + 1}[{group}]",
                )

    def test_delta_swaps_match_initial_permutation_table(self):
        for _ in range(32):
            block = int.from_bytes(secrets.token_bytes(8), "big")
            expected = _permute(block, IP, 64)
            left, right = initial_permutation(block >> 32, block & 0xFFFFFFFF)
            self.assertEqual((left << 32) | right, expected)
            self.assertEqual(
                final_permutation(left, right),
                (block >> 32, block & 0xFFFFFFFF),
            )

    def test_parity_adjustment_sets_odd_parity_in_top_bit(self):
        self.assertEqual(adjust_parity(OUTER_KEY), bytes.fromhex("46ef61f4e66be9ef"))
        self.assertEqual(adjust_parity(AIRI_KEY), bytes.fromhex("647561ec73e561ec"))
        for value in adjust_parity(bytes(range(256))):
            self.assertEqual(bin(value).count("1") % 2, 1)

    def test_key_schedule_shape(self):
        subkeys = key_schedule(adjust_parity(OUTER_KEY))
        self.assertEqual(len(subkeys), 16)
        for hi, lo in subkeys:
            self.assertLess(hi, 1 << 24)
            self.assertLess(lo, 1 << 24)

    def test_key_schedule_rejects_short_key(self):
        with self.assertRaises(ValueError):
            key_schedule(b"short")

    def test_decrypt_inverts_encrypt(self):
        for _ in range(16):
            subkeys = key_schedule(secrets.token_bytes(8))
            block = secrets.token_bytes(8)
            self.assertEqual(decrypt_block(encrypt_block(block, subkeys), subkeys), block)

    def test_matches_reference_implementation(self):
        for _ in range(8):
            key = adjust_parity(secrets.token_bytes(8))
            block = secrets.token_bytes(8)
            self.assertEqual(encrypt_block(block, key_schedule(key)), _reference_cbc(block, key))


class ChainingTests(unittest.TestCase):
    def test_vendor_pad_keeps_only_remainder_in_last_byte(self):
        self.assertEqual(vendor_pad(b"\x01\x02\x03"), bytes.fromhex("0102030000000003"))
        self.assertEqual(vendor_pad(bytes(8)), bytes(16))
        self.assertEqual(vendor_pad(b""), bytes(8))

    def test_vendor_pad_alignment(self):
        for length in range(0, 41):
            padded = vendor_pad(b"\xff" * length)
            self.assertEqual(len(padded) % 8, 0)
            self.assertGreater(len(padded), length)
            self.assertEqual(padded[-1], length % 8)

    def test_des_cbc_known_vector(self):
        ciphertext = des_cbc_encrypt(vendor_pad(b"hello world"), OUTER_KEY)
        self.assertEqual(ciphertext, bytes.fromhex("7109202e667a2b51ad227e084720a087"))

    def test_des_cbc_matches_reference(self):
        data = secrets.token_bytes(64)
        key = secrets.token_bytes(8)
        self.assertEqual(des_cbc_encrypt(data, key), _reference_cbc(data, adjust_parity(key)))

    def test_des_cbc_rejects_unaligned_input(self):
        with self.assertRaises(ValueError):
            des_cbc_encrypt(b"1234567", OUTER_KEY)

    def test_triple_des_known_vector(self):
        key = bytes((i * 7 + 1) & 0xFF for i in range(24))
        self.assertEqual(
            triple_des_cbc_encrypt(bytes(range(16)), key),
            bytes.fromhex("19e9e6e1e0e9dbd04f58fc61ef8233dc"),
        )

    def test_triple_des_matches_reference(self):
        data = secrets.token_bytes(48)
        key = secrets.token_bytes(24)
        self.assertEqual(
            triple_des_cbc_encrypt(data, key),
            _reference_cbc(data, adjust_parity(key)),
        )

    def test_triple_des_with_equal_keys_is_single_des(self):
        data = secrets.token_bytes(32)
        self.assertEqual(
            triple_des_cbc_encrypt(data, OUTER_KEY * 3),
            des_cbc_encrypt(data, OUTER_KEY),
        )

    def test_triple_des_rejects_wrong_key_length(self):
        with self.assertRaises(ValueError):
            triple_des_cbc_encrypt(bytes(8), bytes(16))


class DeviceLockTests(unittest.TestCase):
    DEVICE = "DEVICE-0001-ABCDEFGH"

    def test_short_identifier_is_extended_with_seed(self):
        self.assertEqual(derive_key_slot("ABC"), bytes.fromhex("41424378933386b659c46f1fd7aa08e2"))

    def test_long_identifier_is_folded(self):
        self.assertEqual(
            derive_key_slot("0123456789ABCDEFXYZ"),
            bytes.fromhex("68686833343536373839414243444546"),
        )

    def test_identifier_longer_than_buffer_is_truncated(self):
        base = bytes(range(1, 129))
        self.assertEqual(derive_key_slot(base + b"tail"), derive_key_slot(base))

    def test_sixteen_byte_identifier_is_copied(self):
        ident = b"0123456789abcdef"
        self.assertEqual(derive_key_slot(ident), ident)

    def test_empty_identifier_raises(self):
        with self.assertRaises(StructuralError):
            derive_key_slot("")
        with self.assertRaises(ValueError):
            derive_key_slot(b"")

    def test_expand_key(self):
        self.assertEqual(
            expand_key(derive_key_slot("ABC")),
            bytes.fromhex("6167b503c59a576aa31a422ddf67a01c854448863639994b"),
        )

    def test_derivation_is_deterministic(self):
        self.assertEqual(derive_key_slot(self.DEVICE), derive_key_slot(self.DEVICE))
        self.assertEqual(
            expand_key(derive_key_slot(self.DEVICE)),
            expand_key(derive_key_slot(self.DEVICE)),
        )

    def test_second_block_reverses_first_block(self):
        slot = derive_key_slot(self.DEVICE)
        self.assertEqual(
            derive_second_block(slot, bytes(range(16))),
            bytes.fromhex("10111e0d4e4f36383736363144444444"),
        )

    def test_locked_csec_known_vector(self):
        blob = build_locked_csec(self.DEVICE, first_block=bytes(range(16)))
        self.assertEqual(len(blob), CSEC_LEN)
        self.assertEqual(
            blob,
            bytes.fromhex(
                "5a517c405f447c02903bcc5e1d69dcf8522fe875d0ed7f97"
                "424785ba7ea0d14a7002c5ff773547d8d7976ecdb236044d"
                "633e86b0924686a12c9d2d43fdedd120ef51d11ff037ad40"
                "960fc87bfc1d58ba"
            ),
        )

    def test_locked_csec_structure(self):
        first = secrets.token_bytes(16)
        plaintext = _cbc_decrypt(build_locked_csec(self.DEVICE, first_block=first), OUTER_KEY)
        self.assertEqual(plaintext[-1], 74 % 8)
        top = decode_chunks(plaintext, 0, 74)
        self.assertEqual([c.tag for c in top], ["ABCF", "ABEI"])
        self.assertEqual(top[0].data, b"\x00\x01")
        inner = decode_children(top[1])
        self.assertEqual([(c.tag, len(c.data)) for c in inner], [("AIRI", 24), ("AIVF", 16)])
        self.assertEqual(_cbc_decrypt(inner[0].data, AIRI_KEY), vendor_pad(first))

    def test_random_first_block_varies_output(self):
        first = build_locked_csec(self.DEVICE)
        second = build_locked_csec(self.DEVICE)
        self.assertEqual(len(first), CSEC_LEN)
        self.assertNotEqual(first, second)
        # ABCF and the AIRI header encrypt identically under the fixed IV
        self.assertEqual(first[:24], ppfcpi.CSEC_CONSTANT[:24])

    def test_constant_csec_is_a_valid_unlocked_blob(self):
        plaintext = _cbc_decrypt(ppfcpi.CSEC_CONSTANT, OUTER_KEY)
        top = decode_chunks(plaintext, 0, len(plaintext) - 8 + plaintext[-1])
        self.assertEqual([c.tag for c in top], ["ABCF", "ABEI"])
        inner = decode_children(top[1])
        self.assertEqual([(c.tag, len(c.data)) for c in inner], [("AIRI", 24), ("AIVF", 16)])


if __name__ == "__main__":
    unittest.main()
