"""Test helpers for hnc-pipeline tools."""

from hnc_pipeline.command import Command, run

HNC_PIPELINE_BIN = "hnc-pipeline"


async def run_command(args: list[str], env: dict[str, str] | None = None) -> str:
    return await run(Command([HNC_PIPELINE_BIN] + args, env=env))
