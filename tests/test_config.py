"""Configuration from MOVE_PROVER_* variables, profiles and program sources."""

import random
from pathlib import Path

import pytest

from move_prover.config import (
    BUILD_TIMEOUT_SECONDS,
    DEFAULT_STAGE_DELAY,
    ProverConfig,
    SyntheticRanges,
)
from move_prover.profiles import PROFILES, SP1_V1, SP1_V3, get_profile
from move_prover.program_template import materialize_program, program_exists, render_program


class TestFromEnv:
    def test_defaults(self):
        config = ProverConfig.from_env({})
        assert config.toolchain == "cargo"
        assert config.program_dir == Path("prover-program")
        assert config.profile == "sp1-v1"
        assert config.build_timeout == BUILD_TIMEOUT_SECONDS
        assert config.stage_delay == DEFAULT_STAGE_DELAY
        assert config.max_concurrent_real == 1
        assert config.history_limit is None
        assert config.webhook_url is None

    def test_overrides(self):
        config = ProverConfig.from_env(
            {
                "MOVE_PROVER_TOOLCHAIN": "/opt/sp1/cargo",
                "MOVE_PROVER_PROGRAM_DIR": "/tmp/prog",
                "MOVE_PROVER_PROFILE": "sp1-v3",
                "MOVE_PROVER_PROVE_TIMEOUT": "120",
                "MOVE_PROVER_STAGE_DELAY": "0, 0.5",
                "MOVE_PROVER_MAX_CONCURRENT_REAL": "0",
                "MOVE_PROVER_HISTORY_LIMIT": "100",
                "MOVE_PROVER_WEBHOOK_URL": "https://hooks.test/p",
            }
        )
        assert config.toolchain == "/opt/sp1/cargo"
        assert config.program_dir == Path("/tmp/prog")
        assert config.profile == "sp1-v3"
        assert config.prove_timeout == 120.0
        assert config.stage_delay == (0.0, 0.5)
        assert config.max_concurrent_real == 0
        assert config.history_limit == 100
        assert config.webhook_url == "https://hooks.test/p"

    def test_single_stage_delay_value(self):
        assert ProverConfig.from_env({"MOVE_PROVER_STAGE_DELAY": "0"}).stage_delay == (0.0, 0.0)

    @pytest.mark.parametrize(
        "name,value",
        [("MOVE_PROVER_BUILD_TIMEOUT", "soon"), ("MOVE_PROVER_STAGE_DELAY", "fast,slow")],
    )
    def test_malformed_values(self, name, value):
        with pytest.raises(ValueError):
            ProverConfig.from_env({name: value})


class TestSyntheticRanges:
    def test_draw_is_inclusive(self):
        ranges = SyntheticRanges(checksum=(5, 5))
        assert ranges.draw("checksum", random.Random()) == 5


class TestProfiles:
    def test_known_profiles(self):
        assert set(PROFILES) == {"sp1-v1", "sp1-v2", "sp1-v3"}
        assert get_profile("sp1-v3") is SP1_V3

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="sp1-v9"):
            get_profile("sp1-v9")

    def test_every_stage_list_ends_complete(self):
        for profile in PROFILES.values():
            assert profile.real_stages[-1].name == "complete"
            assert profile.fallback_stages[-1].name == "complete"


class TestProgramTemplate:
    def test_render_pins_sdk_version(self):
        files = render_program(SP1_V3)
        assert 'sp1-sdk = "3.0.0"' in files["Cargo.toml"]
        assert "PROOF_VERIFIED" in files["script/src/main.rs"]
        assert "FROM_SQUARE" in files["script/src/main.rs"]

    def test_materialize(self, tmp_path):
        target = tmp_path / "prog"
        assert not program_exists(target)
        written = materialize_program(target, SP1_V1)
        assert program_exists(target)
        assert set(written) == {target / rel for rel in render_program(SP1_V1)}
