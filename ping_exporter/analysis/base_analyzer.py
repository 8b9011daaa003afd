import logging
import os
from abc import ABC, abstractmethod

import pandas as pd

logger = logging.getLogger("PingExporter.BaseAnalyzer")


class BaseAnalyzer(ABC):
    """
    Abstract base class for analyzers of recorded probe outcomes.
    """
    def __init__(self, input_path):
        """
        Initializes the base analyzer.

        Args:
            input_path (str): A raw_data.jsonl file, or a directory containing one.
        """
        if os.path.isdir(input_path):
            self.output_dir = input_path
            self.data_file = os.path.join(input_path, 'raw_data.jsonl')
        else:
            self.output_dir = os.path.dirname(input_path) or '.'
            self.data_file = input_path
        self.df = None

    def load_data(self):
        """
        Loads the JSONL records into a pandas DataFrame.
        """
        try:
            logger.info(f"Loading data from {self.data_file}")
            self.df = pd.read_json(self.data_file, lines=True)
            self.df['timestamp'] = pd.to_datetime(self.df['timestamp'], utc=True).dt.tz_localize(None)
            logger.info(f"Successfully loaded {len(self.df)} records.")
        except FileNotFoundError:
            logger.error(f"Data file not found: {self.data_file}")
            self.df = pd.DataFrame()
        except ValueError as e:
            logger.error(f"Error loading data: {e}")
            self.df = pd.DataFrame()

    @abstractmethod
    def analyze(self):
        """
        Performs the data analysis. Must be implemented by subclasses.
        """

    def run(self):
        """
        Runs the full analysis pipeline.
        """
        self.load_data()
        if not self.df.empty:
            return self.analyze()
        logger.warning("DataFrame is empty. Skipping analysis.")
        return None
