from seed_classifier.pipeline import PipelineRunner


def main() -> None:
    """Run the full seed classification pipeline."""
    runner = PipelineRunner("config/default.yaml")
    runner.run()


if __name__ == "__main__":
    main()
