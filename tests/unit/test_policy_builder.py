"""
Tests for the staking wallet policy builders
"""

import asyncio

import pytest

from conftest import (
    COVENANT_PKS,
    DEVICE_XPUB,
    FINALITY_PROVIDER_PK,
    SLASHING_LEAF_HASH,
)
from crypto.keys import Network, create_extended_pubkey
from policy.builder import (
    MagicCode,
    PolicyName,
    SlashingParams,
    TimelockParams,
    UnbondingParams,
    slashing_path_policy,
    staking_tx_policy,
    timelock_path_policy,
    unbonding_path_policy,
)
from policy.exceptions import (
    InvalidPolicyNameError,
    InvalidThresholdError,
    InvalidTimelockError,
    MissingCovenantKeysError,
    PolicyError,
    PolicyValidationError,
    ThresholdExceedsKeysError,
)
from policy.wallet_policy import WalletPolicy


MAINNET_ORIGIN = "[f5acc2fd/86'/0'/0']"
TESTNET_ORIGIN = "[f5acc2fd/86'/1'/0']"


class TestWalletPolicy:
    """Test WalletPolicy behaviour."""

    def test_descriptor_substitution(self):
        policy = WalletPolicy('Test', 'tr(@0/**,pk_k(@1/**))', ['A', 'B'])
        assert policy.to_descriptor() == 'tr(A/**,pk_k(B/**))'
        assert policy.keys == ('A', 'B')

    def test_placeholders_beyond_keys(self):
        with pytest.raises(PolicyError):
            WalletPolicy('Test', 'tr(@0/**,pk_k(@1/**))', ['A'])

    def test_to_dict(self):
        policy = WalletPolicy('Test', 'tr(@0/**)', ['A'])
        assert policy.to_dict() == {
            'name': 'Test', 'descriptor_template': 'tr(@0/**)', 'keys': ['A']
        }


class TestStakingTxPolicy:
    """Test the key-path policy."""

    def test_default_mainnet(self, fake_device):
        """Test template, key origin and device calls."""
        policy = asyncio.run(staking_tx_policy(fake_device))
        assert policy.name == PolicyName.STAKE_TRANSFER
        assert policy.descriptor_template == 'tr(@0/**)'
        assert policy.keys == (MAINNET_ORIGIN + DEVICE_XPUB,)
        assert fake_device.calls == [
            ('get_master_fingerprint',),
            ('get_extended_pubkey', "m/86'/0'/0'"),
        ]

    def test_testnet_default_path(self, fake_device):
        policy = asyncio.run(staking_tx_policy(fake_device, is_testnet=True))
        assert policy.keys[0].startswith(TESTNET_ORIGIN)
        assert fake_device.calls[-1] == ('get_extended_pubkey', "m/86'/1'/0'")

    def test_explicit_path(self, fake_device):
        policy = asyncio.run(staking_tx_policy(fake_device, derivation_path="m/86'/0'/5'"))
        assert policy.keys[0] == "[f5acc2fd/86'/0'/5']" + DEVICE_XPUB


class TestSlashingPolicy:
    """Test the slashing-consent policy."""

    def setup_method(self):
        """Set up test fixtures."""
        self.params = SlashingParams(
            leaf_hash=SLASHING_LEAF_HASH,
            finality_provider_pk=FINALITY_PROVIDER_PK,
            covenant_threshold=2,
            covenant_pks=COVENANT_PKS[:3],
        )

    def test_template_and_keys(self, fake_device):
        """Test the full key list of a testnet slashing policy."""
        policy = asyncio.run(slashing_path_policy(fake_device, self.params, is_testnet=True))

        assert policy.name == 'Consent to slashing'
        assert policy.descriptor_template == (
            'tr(@0/**,and_v(pk_k(@1/**),and_v(pk_k(@2/**),multi_a(2,@3/**,@4/**,@5/**))))'
        )
        assert len(policy.keys) == 6

        leaf_key = create_extended_pubkey(bytes.fromhex(SLASHING_LEAF_HASH), Network.TESTNET)
        fp_key = create_extended_pubkey(bytes.fromhex(FINALITY_PROVIDER_PK), Network.TESTNET)
        assert policy.keys[0] == "[69846d00/86'/1'/0']" + leaf_key
        assert policy.keys[1] == TESTNET_ORIGIN + DEVICE_XPUB
        assert policy.keys[2] == "[ff119473/86'/1'/0']" + fp_key
        assert policy.keys[3] == create_extended_pubkey(bytes.fromhex(COVENANT_PKS[0]),
                                                        Network.TESTNET)
        assert all(key.startswith('tpub') for key in policy.keys[3:])

    def test_check_only_leaf_hash(self, fake_device):
        policy = asyncio.run(slashing_path_policy(fake_device, self.params,
                                                  display_leaf_hash=False))
        assert policy.keys[0].startswith(f"[{MagicCode.LEAFHASH_CHECK_ONLY_FP.value}/86'/0'/0']xpub")

    def test_alternate_names(self, fake_device):
        for name in (PolicyName.STAKE_STEP_1, PolicyName.STAKE_STEP_2):
            policy = asyncio.run(slashing_path_policy(fake_device, self.params, policy_name=name))
            assert policy.name == name

    def test_invalid_policy_name(self, fake_device):
        """Test unknown names fail before any device call."""
        with pytest.raises(InvalidPolicyNameError):
            asyncio.run(slashing_path_policy(fake_device, self.params, policy_name='Unbond'))
        assert fake_device.calls == []

    def test_hex_params_are_decoded(self):
        assert self.params.leaf_hash == bytes.fromhex(SLASHING_LEAF_HASH)
        assert self.params.covenant_pks[0] == bytes.fromhex(COVENANT_PKS[0])

    def test_invalid_hex_param(self):
        with pytest.raises(PolicyValidationError):
            SlashingParams(leaf_hash='zz', finality_provider_pk=FINALITY_PROVIDER_PK,
                           covenant_threshold=1, covenant_pks=COVENANT_PKS[:1])


class TestCovenantValidation:
    """Test covenant parameter validation, which precedes any device call."""

    def _unbonding(self, device, threshold, covenant_pks):
        params = UnbondingParams(leaf_hash=SLASHING_LEAF_HASH, covenant_threshold=threshold,
                                 covenant_pks=covenant_pks)
        return asyncio.run(unbonding_path_policy(device, params))

    def test_threshold_below_one(self, fake_device):
        with pytest.raises(InvalidThresholdError) as exc_info:
            self._unbonding(fake_device, 0, COVENANT_PKS[:2])
        assert str(exc_info.value) == (
            "Invalid value for covenantThreshold: 0. It should be greater than or equal to 1."
        )
        assert fake_device.calls == []

    def test_no_covenant_keys(self, fake_device):
        with pytest.raises(MissingCovenantKeysError) as exc_info:
            self._unbonding(fake_device, 1, [])
        assert str(exc_info.value) == "covenantPks must have at least 1 element. Current length: 0"
        assert fake_device.calls == []

    def test_threshold_exceeds_keys(self, fake_device):
        with pytest.raises(ThresholdExceedsKeysError) as exc_info:
            self._unbonding(fake_device, 3, COVENANT_PKS[:2])
        assert str(exc_info.value) == (
            "The length of covenantPks (2) is less than the required covenantThreshold (3)."
        )
        assert fake_device.calls == []

    def test_slashing_uses_same_checks(self, fake_device):
        params = SlashingParams(leaf_hash=SLASHING_LEAF_HASH,
                                finality_provider_pk=FINALITY_PROVIDER_PK,
                                covenant_threshold=10, covenant_pks=COVENANT_PKS)
        with pytest.raises(ThresholdExceedsKeysError):
            asyncio.run(slashing_path_policy(fake_device, params))
        assert fake_device.calls == []


class TestUnbondingPolicy:
    """Test the unbonding policy."""

    def test_template_and_keys(self, fake_device):
        params = UnbondingParams(leaf_hash=SLASHING_LEAF_HASH, covenant_threshold=6,
                                 covenant_pks=COVENANT_PKS)
        policy = asyncio.run(unbonding_path_policy(fake_device, params))

        placeholders = ','.join(f"@{i}/**" for i in range(2, 11))
        assert policy.name == 'Unbond'
        assert policy.descriptor_template == f"tr(@0/**,and_v(pk_k(@1/**),multi_a(6,{placeholders})))"
        assert len(policy.keys) == 11
        assert policy.keys[0].startswith("[69846d00/86'/0'/0']xpub")
        assert policy.keys[1] == MAINNET_ORIGIN + DEVICE_XPUB


class TestTimelockPolicy:
    """Test the timelock withdrawal policy."""

    def test_template_and_keys(self, fake_device):
        params = TimelockParams(leaf_hash=SLASHING_LEAF_HASH, timelock_blocks=64000)
        policy = asyncio.run(timelock_path_policy(fake_device, params, is_testnet=True))

        assert policy.name == 'Withdraw'
        assert policy.descriptor_template == 'tr(@0/**,and_v(pk_k(@1/**),older(64000)))'
        assert policy.keys[1] == TESTNET_ORIGIN + DEVICE_XPUB

    def test_invalid_timelock(self, fake_device):
        """Test negative and non-integer timelocks are refused before device calls."""
        for blocks in (-1, 1.5, True):
            params = TimelockParams(leaf_hash=SLASHING_LEAF_HASH, timelock_blocks=blocks)
            with pytest.raises(InvalidTimelockError):
                asyncio.run(timelock_path_policy(fake_device, params))
        assert fake_device.calls == []
