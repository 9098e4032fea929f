# =============================================================================
# Evaluation Module
# =============================================================================
# This module measures a RAG system in two parts:
#   1. Retrieval  - did we find the right documents? (hit rate, MRR, P/R/F1@k)
#   2. Generation - is the answer faithful to the context and relevant to the
#                   question? (LLM-as-judge)
# It also has the tools for running evaluation continuously: a golden
# dataset, failure diagnosis and a sampling monitor for production traffic.

import json
import random
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from aitutorial.config import deep_merge, resolve_path
from aitutorial.embedding import create_embed_fn
from aitutorial.llm import chat, get_model
from aitutorial.response import generate_answer
from aitutorial.retrieval import build_retrievers, retrieve, uses_embeddings
from aitutorial.run_tracker import log
from aitutorial.structured import parse_json_output


RETRIEVAL_FAILURE = 'retrieval_failure'
FAITHFULNESS_FAILURE = 'generation_faithfulness_failure'
RELEVANCY_FAILURE = 'generation_relevancy_failure'
GENERAL_FAILURE = 'generation_general_failure'
EVALUATION_PASSED = 'evaluation_passed'


# =============================================================================
# Retrieval metrics
# =============================================================================

def hit_rate(retrieved: List[int], expected) -> float:
    """1.0 if any expected document was retrieved, else 0.0."""
    expected = set(expected)
    return 1.0 if any(doc in expected for doc in retrieved) else 0.0


def mrr(retrieved: List[int], expected) -> float:
    """Reciprocal rank of the first expected document (0.0 if none was retrieved)."""
    expected = set(expected)
    for rank, doc in enumerate(retrieved, 1):
        if doc in expected:
            return 1.0 / rank
    return 0.0


def compute_metrics_at_k(retrieved: List[int], gold: set, k: int) -> tuple:
    """
    Precision, recall and F1 over the first k retrieved documents.

    Returns:
        tuple: (precision, recall, f1)
    """
    relevant_retrieved = set(retrieved[:k]) & set(gold)

    precision = len(relevant_retrieved) / k if k > 0 else 0.0
    recall = len(relevant_retrieved) / len(gold) if gold else 0.0
    f1 = 2 * (precision * recall) / (precision + recall) if (precision + recall) > 0 else 0.0

    return precision, recall, f1


# =============================================================================
# Evaluation questions
# =============================================================================

@dataclass
class EvaluationQuestion:
    qid: int
    question: str
    expected_docs: List[int] = field(default_factory=list)
    expected_answer: str = ''


def load_questions(config) -> List[EvaluationQuestion]:
    """
    Load evaluation questions from the JSON file at paths.questions.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    questions_path = resolve_path(config.get('paths', {}).get('questions', 'data/questions.json'))

    if not questions_path.exists():
        raise FileNotFoundError(f"Questions file not found: {questions_path}")

    with open(questions_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    return [
        EvaluationQuestion(
            qid=item['qid'],
            question=item['question'],
            expected_docs=item.get('expected_docs', []),
            expected_answer=item.get('expected_answer', ''),
        )
        for item in data
    ]


def evaluate_retrieval(documents, config, method=None, questions=None, embed_fn=None,
                       logger=None) -> dict:
    """
    Run every question through retrieval and score the results.

    Retrieval depth is 10 so that P/R/F1 can be reported at 5 and 10;
    hit rate and MRR are measured over the configured top_k.

    Args:
        documents: The corpus (list of strings)
        config: Configuration dictionary
        method: 'bm25', 'semantic' or 'hybrid' (default: retrieval.method)
        questions: Optional list of EvaluationQuestion (loaded from config if not given)
        embed_fn: Optional embedding function
        logger: Optional logger

    Returns:
        dict: {'method', 'num_questions', 'metrics': {...means...}, 'individual_results': [...]}

    Raises:
        ValueError: If no question has expected documents
    """
    method = method or config.get('retrieval', {}).get('method', 'hybrid')
    questions = questions if questions is not None else load_questions(config)
    questions = [q for q in questions if q.expected_docs]

    if not questions:
        raise ValueError("No evaluation questions with expected documents found")

    top_k = config.get('retrieval', {}).get('top_k', 3)
    deep_config = deep_merge(config, {'retrieval': {'top_k': max(10, top_k)}})

    if embed_fn is None and uses_embeddings(method, config):
        embed_fn = create_embed_fn(config)
    retrievers = build_retrievers(documents, config, method, embed_fn, logger)

    log(f"Running retrieval evaluation ({method}) on {len(questions)} questions...", logger)

    individual_results = []
    for i, q in enumerate(questions, 1):
        log(f"  [{i}/{len(questions)}] {q.question[:60]}", logger)

        results = retrieve(q.question, documents, deep_config, method, embed_fn, retrievers, logger)
        retrieved = [r['doc_index'] for r in results]
        gold = set(q.expected_docs)

        p5, r5, f1_5 = compute_metrics_at_k(retrieved, gold, 5)
        p10, r10, f1_10 = compute_metrics_at_k(retrieved, gold, 10)

        individual_results.append({
            'qid': q.qid,
            'question': q.question,
            'expected_docs': sorted(gold),
            'retrieved_docs': retrieved[:10],
            'hit_rate': hit_rate(retrieved[:top_k], gold),
            'mrr': mrr(retrieved[:top_k], gold),
            'precision_at_5': p5,
            'recall_at_5': r5,
            'f1_at_5': f1_5,
            'precision_at_10': p10,
            'recall_at_10': r10,
            'f1_at_10': f1_10,
        })

    n = len(individual_results)
    metric_names = [
        'hit_rate', 'mrr',
        'precision_at_5', 'recall_at_5', 'f1_at_5',
        'precision_at_10', 'recall_at_10', 'f1_at_10',
    ]
    metrics = {name: sum(r[name] for r in individual_results) / n for name in metric_names}

    log(f"Retrieval evaluation complete: hit rate {metrics['hit_rate']:.2f}, MRR {metrics['mrr']:.2f}", logger)

    return {
        'method': method,
        'num_questions': n,
        'metrics': metrics,
        'individual_results': individual_results,
    }


# =============================================================================
# Generation metrics (LLM-as-judge)
# =============================================================================

class JudgeResult(BaseModel):
    passing: bool
    score: float
    feedback: str = ''


FAITHFULNESS_PROMPT = """You are evaluating whether an answer is supported by the given context.

Context:
{context}

Question: {query}

Answer: {response}

Is every claim in the answer supported by the context?
Respond in JSON: {{"passing": true or false, "score": number between 0 and 1, "feedback": "short explanation"}}"""


RELEVANCY_PROMPT = """You are evaluating whether an answer addresses the question asked.

Context:
{context}

Question: {query}

Answer: {response}

Does the answer respond to the question, using the context where relevant?
Respond in JSON: {{"passing": true or false, "score": number between 0 and 1, "feedback": "short explanation"}}"""


def _judge(client, prompt, model, failure_label):
    result = parse_json_output(chat(client, prompt, model, temperature=0, json_mode=True), JudgeResult)
    # The label lets diagnose_failure tell the two kinds of failure apart
    if not result.passing and failure_label not in result.feedback:
        result.feedback = f"{failure_label} failure: {result.feedback}"
    return result


def judge_faithfulness(client, query, response, contexts, model) -> JudgeResult:
    """
    Ask the judge model whether the answer is supported by the contexts.

    Raises:
        StructuredOutputError: If the judge reply isn't valid JSON
    """
    prompt = FAITHFULNESS_PROMPT.format(context="\n\n".join(contexts), query=query, response=response)
    return _judge(client, prompt, model, 'Faithfulness')


def judge_relevancy(client, query, response, contexts, model) -> JudgeResult:
    """
    Ask the judge model whether the answer addresses the question.

    Raises:
        StructuredOutputError: If the judge reply isn't valid JSON
    """
    prompt = RELEVANCY_PROMPT.format(context="\n\n".join(contexts), query=query, response=response)
    return _judge(client, prompt, model, 'Relevance')


def diagnose_failure(query, retrieval_scores, response_result, hit_threshold=0.8,
                     mrr_threshold=0.7, logger=None) -> str:
    """
    Decide whether a bad answer is a retrieval or a generation problem.

    Retrieval is checked first: if the right documents weren't found, the
    generator never had a chance.

    Args:
        query: The question
        retrieval_scores: {'hit_rate': float, 'mrr': float}
        response_result: JudgeResult for the answer
        hit_threshold: Minimum acceptable hit rate
        mrr_threshold: Minimum acceptable MRR
        logger: Optional logger

    Returns:
        str: retrieval_failure, generation_faithfulness_failure,
             generation_relevancy_failure, generation_general_failure
             or evaluation_passed
    """
    log(f"RAG failure analysis for: {query}", logger)

    hit = retrieval_scores.get('hit_rate', 0) or 0
    reciprocal_rank = retrieval_scores.get('mrr', 0) or 0

    if hit < hit_threshold or reciprocal_rank < mrr_threshold:
        log(f"Retrieval problem (hit rate {hit:.2f}, MRR {reciprocal_rank:.2f}): "
            "tune chunking, reranking or the embedding model", logger, level='warning')
        return RETRIEVAL_FAILURE

    if not response_result.passing:
        feedback = response_result.feedback

        if 'Faithfulness' in feedback or 'support' in feedback:
            log(f"Generation problem (faithfulness): {feedback}", logger, level='warning')
            return FAITHFULNESS_FAILURE

        if 'Relevance' in feedback or 'query' in feedback:
            log(f"Generation problem (relevancy): {feedback}", logger, level='warning')
            return RELEVANCY_FAILURE

        log(f"Generation problem: {feedback}", logger, level='warning')
        return GENERAL_FAILURE

    log("Both retrieval and generation meet the targets", logger)
    return EVALUATION_PASSED


def evaluate_generation(documents, config, client, method=None, questions=None,
                        embed_fn=None, logger=None) -> dict:
    """
    Answer every question, judge the answers and diagnose failures.

    Args:
        documents: The corpus
        config: Configuration dictionary
        client: OpenAI client used for answering and judging
        method: Retrieval method
        questions: Optional list of EvaluationQuestion
        embed_fn: Optional embedding function
        logger: Optional logger

    Returns:
        dict: {'num_questions', 'metrics', 'individual_results'}
    """
    method = method or config.get('retrieval', {}).get('method', 'hybrid')
    questions = questions if questions is not None else load_questions(config)
    model = get_model(config)
    thresholds = config.get('evaluation', {})

    if embed_fn is None and uses_embeddings(method, config):
        embed_fn = create_embed_fn(config)
    retrievers = build_retrievers(documents, config, method, embed_fn, logger)

    individual_results = []
    for q in questions:
        results = retrieve(q.question, documents, config, method, embed_fn, retrievers, logger)
        contexts = [r['document'] for r in results]
        retrieved = [r['doc_index'] for r in results]

        answer = generate_answer(q.question, contexts, config, client, logger=logger)
        faithfulness = judge_faithfulness(client, q.question, answer, contexts, model)
        relevancy = judge_relevancy(client, q.question, answer, contexts, model)

        # Report the first failing judgement
        judgement = faithfulness if not faithfulness.passing else relevancy
        scores = {'hit_rate': hit_rate(retrieved, q.expected_docs), 'mrr': mrr(retrieved, q.expected_docs)}
        if not q.expected_docs:
            scores = {'hit_rate': 1.0, 'mrr': 1.0}

        diagnosis = diagnose_failure(
            q.question, scores, judgement,
            thresholds.get('hit_rate_threshold', 0.8),
            thresholds.get('mrr_threshold', 0.7),
            logger,
        )

        individual_results.append({
            'qid': q.qid,
            'question': q.question,
            'answer': answer,
            'faithfulness': faithfulness.model_dump(),
            'relevancy': relevancy.model_dump(),
            'diagnosis': diagnosis,
        })

    n = len(individual_results)
    metrics = {
        'faithfulness_pass_rate': sum(r['faithfulness']['passing'] for r in individual_results) / n if n else 0.0,
        'relevancy_pass_rate': sum(r['relevancy']['passing'] for r in individual_results) / n if n else 0.0,
    }

    return {'num_questions': n, 'metrics': metrics, 'individual_results': individual_results}


# =============================================================================
# Golden dataset and monitoring
# =============================================================================

def build_golden_dataset(queries, annotate, write_answer) -> List[dict]:
    """
    Build a golden dataset from real user queries.

    Args:
        queries: The queries to include
        annotate: fn(query) -> list of relevant document texts
        write_answer: fn(query, relevant_texts) -> expected answer

    Returns:
        list: {'query', 'ground_truth_nodes', 'expected_answer'} per query
    """
    dataset = []
    for query in queries:
        relevant = annotate(query)
        dataset.append({
            'query': query,
            'ground_truth_nodes': relevant,
            'expected_answer': write_answer(query, relevant),
        })
    return dataset


def save_golden_dataset(dataset, path) -> Path:
    """Write the golden dataset as JSON and return the path."""
    output = resolve_path(path)
    output.parent.mkdir(parents=True, exist_ok=True)

    with open(output, 'w', encoding='utf-8') as f:
        json.dump(dataset, f, indent=2, ensure_ascii=False)

    return output


def golden_dataset_from_questions(questions, documents) -> List[dict]:
    """
    Golden dataset built from the annotated evaluation questions.

    The expected_docs indexes become the ground truth texts and the
    expected_answer is used as is.
    """
    by_query = {q.question: q for q in questions}

    def annotate(query):
        return [documents[i] for i in by_query[query].expected_docs if 0 <= i < len(documents)]

    def write_answer(query, relevant):
        return by_query[query].expected_answer

    return build_golden_dataset(list(by_query), annotate, write_answer)


class RAGMonitor:
    """
    Log every production query and judge a random sample of them.

    Only queries that exactly match a golden dataset case (ignoring leading
    and trailing whitespace) are judged, so the judgement can be compared
    with a known good answer.

    Args:
        golden_dataset: List of {'query', 'ground_truth_nodes', 'expected_answer'}
        client: OpenAI client for the judge
        config: Configuration dictionary
        sample_rate: Fraction of queries to evaluate (default: evaluation.sample_rate)
        rng: Optional random.Random (for reproducible sampling)
        logger: Optional logger
    """

    def __init__(self, golden_dataset, client, config, sample_rate=None, rng=None, logger=None):
        self.golden_dataset = golden_dataset
        self.client = client
        self.config = config
        if sample_rate is None:
            sample_rate = config.get('evaluation', {}).get('sample_rate', 0.1)
        self.sample_rate = sample_rate
        self.rng = rng or random.Random()
        self.logger = logger

    def should_evaluate(self) -> bool:
        return self.rng.random() < self.sample_rate

    def find_golden_case(self, query) -> Optional[dict]:
        query = query.strip()
        for case in self.golden_dataset:
            if case['query'].strip() == query:
                return case
        return None

    def log_and_evaluate(self, query, contexts, answer) -> Optional[JudgeResult]:
        """
        Log the query and, when sampled and known, judge its faithfulness.

        Returns:
            JudgeResult or None if the query wasn't evaluated
        """
        log(f"[Log] Query: \"{query}\" | Answer length: {len(answer)}", self.logger)

        if not self.should_evaluate():
            return None

        case = self.find_golden_case(query)
        if case is None:
            return None

        log(f"[Eval] Evaluating against golden set for: \"{query}\"", self.logger)
        result = judge_faithfulness(self.client, query, answer, contexts, get_model(self.config))

        if result.passing:
            log("[Eval] Passed.", self.logger)
        else:
            log(f"[Alert] Hallucination/irrelevance detected: {result.feedback}", self.logger, level='warning')

        return result


def monitor_queries(monitor, queries, documents, config, client, method=None,
                    embed_fn=None, logger=None) -> dict:
    """
    Answer a stream of queries the way production would, passing each to the monitor.

    Args:
        monitor: A RAGMonitor
        queries: Query strings, in arrival order
        documents: The corpus
        config: Configuration dictionary
        client: OpenAI client used for answering
        method: Retrieval method (default: retrieval.method)
        embed_fn: Optional embedding function
        logger: Optional logger

    Returns:
        dict: {'num_queries', 'num_evaluated', 'num_failed', 'results': [...]}
    """
    method = method or config.get('retrieval', {}).get('method', 'hybrid')
    if embed_fn is None and uses_embeddings(method, config):
        embed_fn = create_embed_fn(config)
    retrievers = build_retrievers(documents, config, method, embed_fn, logger)

    results = []
    for query in queries:
        retrieved = retrieve(query, documents, config, method, embed_fn, retrievers, logger)
        contexts = [r['document'] for r in retrieved]
        answer = generate_answer(query, contexts, config, client, logger=logger)

        judgement = monitor.log_and_evaluate(query, contexts, answer)
        results.append({
            'query': query,
            'answer': answer,
            'evaluated': judgement is not None,
            'judgement': judgement.model_dump() if judgement else None,
        })

    evaluated = [r for r in results if r['evaluated']]
    return {
        'num_queries': len(results),
        'num_evaluated': len(evaluated),
        'num_failed': sum(1 for r in evaluated if not r['judgement']['passing']),
        'results': results,
    }


# =============================================================================
# Saving results
# =============================================================================

def save_evaluation_results(results: dict, config) -> Path:
    """
    Append a summary of an evaluation run to the evaluation history file.

    Returns:
        Path: The history file
    """
    output_dir = resolve_path(config.get('paths', {}).get('evaluation_results', 'data/evaluation_results'))
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / 'evaluation_history.json'

    existing = []
    if output_file.exists():
        with open(output_file, 'r', encoding='utf-8') as f:
            existing = json.load(f)

    existing.append({
        'timestamp': datetime.now().isoformat(),
        'method': results.get('method'),
        'num_questions': results['num_questions'],
        'metrics': results['metrics'],
        'config': {
            'embedding_model': config.get('embedding', {}).get('model'),
            'top_k': config.get('retrieval', {}).get('top_k'),
            'reranking_enabled': config.get('reranking', {}).get('enabled', False),
        },
    })

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(existing, f, indent=2)

    return output_file
