"""
Tests for script decoding, staking leaf scripts and Taproot leaf helpers
"""

import pytest

from conftest import (
    COVENANT_PKS,
    COVENANT_THRESHOLD,
    FINALITY_PROVIDER_PK,
    SLASHING_LEAF_HASH,
    STAKER_PK,
)
from crypto.keys import tagged_hash
from psbt.builder import PSBTBuilder
from psbt.psbtv2 import PsbtV2
from scripts.encoding import (
    ScriptDecodeError,
    decode_script,
    encode_push,
    encode_script,
    parse_script,
    script_from_asm,
    script_to_asm,
)
from scripts.staking import (
    covenant_multisig_script,
    encode_script_num,
    push_int,
    slashing_script,
    timelock_script,
    unbonding_script,
)
from scripts.taproot import (
    TapLeaf,
    compute_leaf_hash,
    get_taproot_leaf,
    get_taproot_script,
    leaf_hash,
)


class TestScriptDecoding:
    """Test conversion of scripts to token streams."""

    def test_small_integers(self):
        """Test small integers decode as OP_n, never as aliases."""
        assert decode_script(b'\x00\x51\x56\x60') == ['OP_0', 'OP_1', 'OP_6', 'OP_16']

    def test_aliases_not_used(self):
        assert decode_script(b'\xb2\xb1') == ['OP_CHECKSEQUENCEVERIFY', 'OP_CHECKLOCKTIMEVERIFY']

    def test_data_push(self):
        assert decode_script(b'\x02\xab\xcd\xac') == ['abcd', 'OP_CHECKSIG']

    def test_pushdata_forms(self):
        """Test PUSHDATA1 and PUSHDATA2 payloads become hex tokens."""
        assert decode_script(b'\x4c\x02\xab\xcd') == ['abcd']
        assert decode_script(b'\x4d\x01\x00\xef') == ['ef']

    def test_unknown_opcode(self):
        assert decode_script(b'\xfe') == ['OP_UNKNOWN_fe']

    def test_truncated_push(self):
        """Test that pushes past the end of the script are rejected."""
        with pytest.raises(ScriptDecodeError):
            decode_script(b'\x05\x01\x02')
        with pytest.raises(ScriptDecodeError):
            decode_script(b'\x4c')
        with pytest.raises(ScriptDecodeError):
            decode_script(b'\x4d\x10')

    def test_element_positions(self):
        elements = parse_script(b'\x01\xaa\xad')
        assert elements[0].is_push_data
        assert elements[1].opcode_name == 'OP_CHECKSIGVERIFY'

    def test_asm_round_trip(self):
        script = bytes.fromhex('20' + STAKER_PK + 'ad')
        assert script_to_asm(script) == f"{STAKER_PK} OP_CHECKSIGVERIFY"
        assert script_from_asm(script_to_asm(script)) == script

    def test_encode_invalid_token(self):
        with pytest.raises(ScriptDecodeError):
            encode_script(['OP_NOT_A_THING'])

    def test_encode_push_sizes(self):
        assert encode_push(b'\x01' * 75)[0] == 75
        assert encode_push(b'\x01' * 76)[:2] == b'\x4c\x4c'
        assert encode_push(b'\x01' * 256)[:3] == b'\x4d\x00\x01'


class TestStakingScripts:
    """Test construction of the staking leaf scripts."""

    def setup_method(self):
        """Set up test fixtures."""
        self.staker = bytes.fromhex(STAKER_PK)
        self.finality_provider = bytes.fromhex(FINALITY_PROVIDER_PK)
        self.covenants = [bytes.fromhex(pk) for pk in COVENANT_PKS]

    def test_script_numbers(self):
        assert encode_script_num(0) == b''
        assert encode_script_num(1000) == b'\xe8\x03'
        assert encode_script_num(128) == b'\x80\x00'
        assert encode_script_num(-1) == b'\x81'
        assert push_int(6) == b'\x56'
        assert push_int(17) == b'\x01\x11'

    def test_slashing_script_matches_fixture(self, slashing_psbt_bytes):
        """Test the builder reproduces the slashing leaf of the fixture PSBT."""
        script = slashing_script(self.staker, self.finality_provider,
                                 self.covenants, COVENANT_THRESHOLD)
        assert script == get_taproot_script(slashing_psbt_bytes)

    def test_covenant_multisig_tokens(self):
        tokens = decode_script(covenant_multisig_script(self.covenants[:3], 2))
        assert tokens == [
            COVENANT_PKS[0], 'OP_CHECKSIG',
            COVENANT_PKS[1], 'OP_CHECKSIGADD',
            COVENANT_PKS[2], 'OP_CHECKSIGADD',
            'OP_2', 'OP_NUMEQUAL',
        ]

    def test_unbonding_tokens(self):
        tokens = decode_script(unbonding_script(self.staker, self.covenants[:2], 1))
        assert tokens[:2] == [STAKER_PK, 'OP_CHECKSIGVERIFY']
        assert tokens[-2:] == ['OP_1', 'OP_NUMEQUAL']

    def test_timelock_block_count_is_pushed(self):
        """Test block counts are data pushes, even small ones."""
        assert decode_script(timelock_script(self.staker, 1000)) == [
            STAKER_PK, 'OP_CHECKSIGVERIFY', 'e803', 'OP_CHECKSEQUENCEVERIFY'
        ]
        assert decode_script(timelock_script(self.staker, 5))[2] == '05'

    def test_invalid_parameters(self):
        """Test key length and threshold checks."""
        with pytest.raises(ValueError):
            covenant_multisig_script([], 1)
        with pytest.raises(ValueError):
            covenant_multisig_script(self.covenants[:2], 3)
        with pytest.raises(ValueError):
            timelock_script(self.staker[:31], 10)
        with pytest.raises(ValueError):
            timelock_script(self.staker, 0)


class TestTaprootLeaf:
    """Test leaf hashing and leaf extraction from PSBTs."""

    def test_leaf_hash_definition(self):
        """Test leaf hash of version, compact size and script."""
        assert leaf_hash(b'\x51') == tagged_hash('TapLeaf', b'\xc0\x01\x51')
        assert leaf_hash(b'\x51', 0xc2) == tagged_hash('TapLeaf', b'\xc2\x01\x51')

    def test_long_script_compact_size(self):
        script = b'\x51' * 300
        assert TapLeaf(script).leaf_hash() == tagged_hash('TapLeaf', b'\xc0\xfd\x2c\x01' + script)

    def test_empty_leaf_rejected(self):
        with pytest.raises(ValueError):
            TapLeaf(b'')

    def test_fixture_leaf(self, slashing_psbt_bytes):
        """Test the slashing fixture leaf and its hash."""
        leaf = get_taproot_leaf(slashing_psbt_bytes)
        assert leaf.leaf_version == 0xc0
        assert len(leaf.script) == 376
        assert compute_leaf_hash(slashing_psbt_bytes).hex() == SLASHING_LEAF_HASH
        assert compute_leaf_hash(PsbtV2.deserialize(slashing_psbt_bytes)).hex() == SLASHING_LEAF_HASH

    def test_key_path_input(self):
        """Test inputs without leaf scripts give None."""
        builder = PSBTBuilder()
        builder.add_input('11' * 32, 0)
        builder.add_output(b'\x51\x20' + b'\x22' * 32, 1000)
        psbt = PsbtV2.deserialize(builder.serialize())

        assert get_taproot_leaf(psbt) is None
        assert get_taproot_script(psbt) is None
        assert compute_leaf_hash(builder.to_base64()) is None
