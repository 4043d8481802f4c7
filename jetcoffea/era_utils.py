import logging

import yaml


def get_era_details(era):
    """
    Retrieves the 'run' and 'year' associated with a given era.
    """
    from jetcoffea.analysis_config import ERAS

    mapping = ERAS.get(era)
    if mapping is None:
        raise ValueError(f"Unsupported era: {era}. Valid eras: {sorted(ERAS)}")

    return mapping["run"], str(mapping["year"]), era


def load_yaml(filepath):
    """
    Load YAML data from the specified file.
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as file:
            data = yaml.safe_load(file)
            logging.info(f"Successfully loaded YAML file: {filepath}")
            return data
    except (OSError, yaml.YAMLError) as e:
        raise RuntimeError(f"Failed to read YAML file {filepath}: {e}") from e
