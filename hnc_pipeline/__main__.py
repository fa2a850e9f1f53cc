"""Allow running the command line tool with `python -m hnc_pipeline`."""

from hnc_pipeline.tool.hnc_pipeline import main

if __name__ == "__main__":
    main()
