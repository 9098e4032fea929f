# =============================================================================
# Run Tracker Module
# =============================================================================
# This module tracks demonstration runs by saving configs, logs, and results
# to timestamped folders in ./runs. It also provides the small log() helper
# every module uses to report progress either to a run logger or the console.

import json
import logging
from datetime import datetime
from pathlib import Path

import yaml

from aitutorial.config import get_project_root


def log(message, logger=None, level='info'):
    """
    Report a progress message.

    With a logger the message goes to the run log (and its console handler);
    without one it is printed, which is how untracked commands report.

    Args:
        message: The text to report
        logger: Optional logging.Logger
        level: Logging level name used when a logger is given
    """
    if logger:
        getattr(logger, level)(message)
    elif level in ('warning', 'error'):
        print(f"{level.capitalize()}: {message}")
    else:
        print(message)


def create_run(config, run_name=None, runs_dir=None):
    """
    Create a new run folder with a timestamp.

    Each run gets its own folder like: runs/20260128_143022_search/

    Args:
        config: The configuration dictionary used for this run
        run_name: Optional custom name to append to the folder name
        runs_dir: Optional parent folder (defaults to <project>/runs)

    Returns:
        Path: The path to the newly created run folder
    """
    runs_dir = Path(runs_dir) if runs_dir else get_project_root() / 'runs'
    runs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    folder_name = f"{timestamp}_{run_name}" if run_name else timestamp

    run_dir = runs_dir / folder_name
    run_dir.mkdir(exist_ok=True)
    (run_dir / 'results').mkdir(exist_ok=True)

    print(f"Created run folder: {run_dir}")

    return run_dir


def save_config(run_dir, config):
    """
    Save the configuration used for this run.

    Args:
        run_dir: Path to the run folder
        config: The configuration dictionary to save
    """
    config_path = Path(run_dir) / 'config.yaml'

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    print(f"Saved config to: {config_path}")


def save_chunks(run_dir, chunks):
    """
    Save the chunks produced by a chunking run.

    Args:
        run_dir: Path to the run folder
        chunks: List of chunks (strings, dicts, or DocumentChunk objects)
    """
    chunks_path = Path(run_dir) / 'chunks.json'

    chunks_to_save = []
    for chunk in chunks:
        if hasattr(chunk, 'to_dict'):
            chunks_to_save.append(chunk.to_dict())
        else:
            chunks_to_save.append(chunk)

    with open(chunks_path, 'w', encoding='utf-8') as f:
        json.dump(chunks_to_save, f, indent=2, ensure_ascii=False)

    print(f"Saved {len(chunks)} chunks to: {chunks_path}")


def save_results(run_dir, query, results, query_number=None):
    """
    Save search results for a query.

    Results are saved to runs/TIMESTAMP/results/query_001.json

    Args:
        run_dir: Path to the run folder
        query: The search query string
        results: List of result dictionaries from the search function
        query_number: Optional number for ordering multiple queries

    Returns:
        Path: The file that was written
    """
    results_dir = Path(run_dir) / 'results'
    results_dir.mkdir(exist_ok=True)

    if query_number is not None:
        filename = f"query_{query_number:03d}.json"
    else:
        filename = f"query_{datetime.now().strftime('%H%M%S')}.json"

    results_path = results_dir / filename

    data = {
        'query': query,
        'timestamp': datetime.now().isoformat(),
        'num_results': len(results),
        'results': results,
    }

    with open(results_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    print(f"Saved results to: {results_path}")

    return results_path


def save_response(run_dir, question, response, retrieved=None, metadata=None):
    """
    Save the LLM response for a query.

    Args:
        run_dir: Path to the run folder
        question: The user's question
        response: The LLM's response text
        retrieved: Optional list of documents used for context
        metadata: Optional dict with additional metadata (model, pattern, etc.)
    """
    response_path = Path(run_dir) / 'response.json'

    data = {
        'question': question,
        'response': response,
        'timestamp': datetime.now().isoformat(),
    }

    if metadata:
        data['metadata'] = metadata

    if retrieved:
        # Just a preview of each document, the full text is in the corpus
        data['context'] = [doc[:200] for doc in retrieved]

    with open(response_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    print(f"Saved response to: {response_path}")


def save_json(run_dir, filename, data):
    """
    Save any JSON-serialisable object into the run folder.

    Args:
        run_dir: Path to the run folder
        filename: Name of the file to create (e.g. 'evaluation.json')
        data: The data to write

    Returns:
        Path: The file that was written
    """
    path = Path(run_dir) / filename

    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    print(f"Saved {filename} to: {path}")

    return path


def get_logger(run_dir, name='run'):
    """
    Create a logger that writes to both console and a log file in the run folder.

    Args:
        run_dir: Path to the run folder
        name: Name for the logger (default: 'run')

    Returns:
        logging.Logger: A configured logger instance
    """
    log_path = Path(run_dir) / 'run.log'

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Clear any existing handlers (in case this is called multiple times)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.info(f"Logging to: {log_path}")

    return logger
