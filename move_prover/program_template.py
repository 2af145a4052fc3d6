"""
program_template.py — Minimal reference prover program.

Responsibility: Materialize the Cargo workspace the toolchain builds when no
program sources exist on disk. The workspace has two crates:

  program/  guest code: reads (from, to, move_number), commits validity,
            the squares, the move number and a checksum.
  script/   host code: reads the move from environment variables, proves and
            verifies, and prints the marker lines the output parser reads:
              PROOF_RESULT:SUCCESS
              PROOF_SIZE:<bytes>
              PROOF_TIME:<ms>
              PROOF_VERIFIED:<true|false>
              VERIFY_TIME:<ms>
              CHECKSUM:<int>

The host's plain log lines ("Setting up proving keys...", "Generating STARK
proof...", ...) are what the profile's progress markers match.
"""

from __future__ import annotations

import logging
from pathlib import Path

from move_prover.profiles import ProverProfile

logger = logging.getLogger(__name__)

GUEST_CRATE = "move-validator"

_WORKSPACE_TOML = """\
[workspace]
members = ["program", "script"]
resolver = "2"

[workspace.dependencies]
sp1-sdk = "{sdk}"
sp1-zkvm = "{sdk}"
sp1-helper = "{sdk}"
"""

_PROGRAM_TOML = """\
[package]
name = "{crate}"
version = "0.1.0"
edition = "2021"

[dependencies]
sp1-zkvm = {{ workspace = true }}
"""

_PROGRAM_MAIN = """\
#![no_main]
sp1_zkvm::entrypoint!(main);

use sp1_zkvm::io::{commit, read};

pub fn main() {
    let from_square: u8 = read();
    let to_square: u8 = read();
    let move_number: u32 = read();

    let is_valid = from_square < 64 && to_square < 64
        && from_square != to_square
        && move_number > 0;

    commit(&is_valid);
    commit(&from_square);
    commit(&to_square);
    commit(&move_number);
    commit(&(from_square as u32 + to_square as u32 + move_number));
}
"""

_SCRIPT_TOML = """\
[package]
name = "{crate}-script"
version = "0.1.0"
edition = "2021"

[dependencies]
sp1-sdk = {{ workspace = true }}

[build-dependencies]
sp1-helper = {{ workspace = true }}
"""

_SCRIPT_BUILD = """\
use sp1_helper::build_program;

fn main() {
    build_program("../program")
}
"""

_SCRIPT_MAIN = """\
use sp1_sdk::{{ProverClient, SP1Stdin{import_extra}}};
use std::env;

{elf_decl}

fn read_var<T: std::str::FromStr>(name: &str, default: T) -> T {{
    env::var(name).ok().and_then(|v| v.parse().ok()).unwrap_or(default)
}}

fn main() {{
    let from_square: u8 = read_var("{from_var}", {default_from});
    let to_square: u8 = read_var("{to_var}", {default_to});
    let move_number: u32 = read_var("{move_var}", 1);

    let mut stdin = SP1Stdin::new();
    stdin.write(&from_square);
    stdin.write(&to_square);
    stdin.write(&move_number);

    let client = ProverClient::from_env();

    println!("Setting up proving keys...");
    let (pk, vk) = client.setup(ELF);

    println!("Generating STARK proof...");
    let start = std::time::Instant::now();
    let mut proof = client.prove(&pk, &stdin).compressed().run().expect("proving failed");
    let prove_ms = start.elapsed().as_millis();
    println!("STARK proof generated in {{}}ms", prove_ms);

    println!("Verifying proof...");
    let verify_start = std::time::Instant::now();
    client.verify(&proof, &vk).expect("verification failed");
    let verify_ms = verify_start.elapsed().as_millis();

    let is_valid = proof.public_values.read::<bool>();
    let _from = proof.public_values.read::<u8>();
    let _to = proof.public_values.read::<u8>();
    let _move_number = proof.public_values.read::<u32>();
    let checksum = proof.public_values.read::<u32>();

    println!("PROOF_RESULT:SUCCESS");
    println!("PROOF_SIZE:{{}}", proof.bytes().len());
    println!("PROOF_TIME:{{}}", prove_ms);
    println!("PROOF_VERIFIED:{{}}", is_valid);
    println!("VERIFY_TIME:{{}}", verify_ms);
    println!("CHECKSUM:{{}}", checksum);
}}
"""


def _elf_declaration(sdk_version: str) -> tuple[str, str]:
    """(extra import, ELF constant) for the SDK generation in use."""
    major = sdk_version.split(".", 1)[0]
    if major in ("1", "2"):
        return "", (
            'const ELF: &[u8] = include_bytes!('
            '"../../program/elf/riscv32im-succinct-zkvm-elf");'
        )
    return ", include_elf", f'const ELF: &[u8] = include_elf!("{GUEST_CRATE}");'


def render_program(profile: ProverProfile) -> dict[str, str]:
    """Relative path → file content for the whole workspace."""
    import_extra, elf_decl = _elf_declaration(profile.sdk_version)
    default_from, default_to = profile.default_move
    return {
        "Cargo.toml": _WORKSPACE_TOML.format(sdk=profile.sdk_version),
        "program/Cargo.toml": _PROGRAM_TOML.format(crate=GUEST_CRATE),
        "program/src/main.rs": _PROGRAM_MAIN,
        "script/Cargo.toml": _SCRIPT_TOML.format(crate=GUEST_CRATE),
        "script/build.rs": _SCRIPT_BUILD,
        "script/src/main.rs": _SCRIPT_MAIN.format(
            import_extra=import_extra,
            elf_decl=elf_decl,
            from_var=profile.env_schema.from_square,
            to_var=profile.env_schema.to_square,
            move_var=profile.env_schema.move_number,
            default_from=default_from,
            default_to=default_to,
        ),
    }


def program_exists(program_dir: Path) -> bool:
    return (program_dir / "Cargo.toml").exists() and (program_dir / "script").is_dir()


def materialize_program(program_dir: Path, profile: ProverProfile) -> list[Path]:
    """Write the reference workspace under program_dir. Returns written paths.

    Existing files are overwritten; unrelated files are left alone.
    """
    written: list[Path] = []
    for relative, content in render_program(profile).items():
        path = program_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        written.append(path)
    logger.info("Materialized prover program in %s (%d files)", program_dir, len(written))
    return written
