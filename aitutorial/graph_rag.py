# =============================================================================
# GraphRAG Module
# =============================================================================
# This module shows retrieval guided by a knowledge graph.
# Entities (people, projects, ...) are nodes; relations such as "works_on" are
# edges; each node lists the ids of the documents that talk about it.
# Starting from the entities in a question we walk one hop through the graph
# and collect the documents of every node we reach. This finds connections
# (e.g. "who works on both projects?") that plain vector search can miss.

import networkx as nx

from aitutorial.config import load_yaml_file, resolve_path
from aitutorial.llm import chat, get_model
from aitutorial.response import build_user_prompt, format_context
from aitutorial.run_tracker import log


class KnowledgeGraph:
    """
    A directed knowledge graph stored in a networkx DiGraph.

    Attributes:
        graph: The underlying nx.DiGraph
        documents: Optional dict mapping document id -> text
    """

    def __init__(self):
        self.graph = nx.DiGraph()
        self.documents = {}

    def add_relation(self, source, target, relation_type):
        """Add an edge such as ("Alice", "Project X", "works_on")."""
        for node in (source, target):
            if node not in self.graph:
                self.graph.add_node(node, document_ids=[])
        self.graph.add_edge(source, target, type=relation_type)

    def link_documents(self, entity, document_ids):
        """Attach document ids to an entity, creating the node if needed."""
        if entity not in self.graph:
            self.graph.add_node(entity, document_ids=[])
        self.graph.nodes[entity]['document_ids'] = list(document_ids)

    def has_entity(self, entity):
        return entity in self.graph

    def document_ids(self, entity):
        if entity not in self.graph:
            return []
        return self.graph.nodes[entity].get('document_ids', [])

    def neighbors(self, entity):
        """
        Nodes one hop away in either direction.

        Predecessors come first (e.g. the people working on a project),
        then successors.
        """
        if entity not in self.graph:
            return []

        found = list(self.graph.predecessors(entity))
        found += [n for n in self.graph.successors(entity) if n not in found]
        return found

    def find_entities(self, text):
        """Return graph nodes whose names appear in the text (case-insensitive)."""
        lowered = text.lower()
        return [node for node in self.graph.nodes if str(node).lower() in lowered]

    @classmethod
    def from_dict(cls, data):
        """
        Build a graph from a dictionary.

        Expected shape:
            {
                'relations': [{'source': 'Alice', 'target': 'Project X', 'type': 'works_on'}],
                'nodes': {'Alice': ['doc_1']},
                'documents': {'doc_1': 'Alice is a senior engineer.'}
            }
        """
        kg = cls()

        for relation in data.get('relations', []):
            kg.add_relation(relation['source'], relation['target'], relation.get('type', 'related_to'))

        for entity, document_ids in (data.get('nodes') or {}).items():
            kg.link_documents(entity, document_ids)

        kg.documents = dict(data.get('documents') or {})

        return kg

    @classmethod
    def load(cls, path):
        """
        Load a graph from a YAML file (see from_dict for the layout).

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        file_path = resolve_path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Knowledge graph file not found: {file_path}")
        return cls.from_dict(load_yaml_file(file_path))


class GraphRAG:
    """
    Answer questions from documents found by walking the knowledge graph.

    Args:
        graph: A KnowledgeGraph
        documents: Dict of document id -> text (defaults to graph.documents)
        client: OpenAI client
        config: Configuration dictionary
        logger: Optional logger
    """

    def __init__(self, graph, documents=None, client=None, config=None, logger=None):
        self.graph = graph
        self.documents = documents if documents is not None else graph.documents
        self.client = client
        self.config = config or {}
        self.logger = logger

    def graph_guided_retrieval(self, entities):
        """
        Collect document ids for the entities and their direct neighbours.

        Args:
            entities: List of entity names

        Returns:
            list: Document ids, in discovery order, without duplicates
        """
        relevant_nodes = list(entities)
        for entity in entities:
            for neighbor in self.graph.neighbors(entity):
                if neighbor not in relevant_nodes:
                    relevant_nodes.append(neighbor)

        log(f"  -> Found relevant nodes: {', '.join(map(str, relevant_nodes))}", self.logger)

        doc_ids = []
        for node in relevant_nodes:
            for doc_id in self.graph.document_ids(node):
                if doc_id not in doc_ids:
                    doc_ids.append(doc_id)

        return doc_ids

    def query(self, question, entities=None):
        """
        Answer a question using graph-guided retrieval.

        Args:
            question: The user's question
            entities: Entities to start from (found in the question if not given)

        Returns:
            dict: {'answer', 'entities', 'document_ids', 'documents'}
        """
        if entities is None:
            entities = self.graph.find_entities(question)
        log(f"  -> Entities: {entities}", self.logger)

        doc_ids = self.graph_guided_retrieval(entities)
        documents = [self.documents[d] for d in doc_ids if d in self.documents]

        log(f"  -> Retrieved {len(documents)} docs based on graph connections.", self.logger)

        answer = chat(
            self.client,
            build_user_prompt(question, format_context(documents)),
            get_model(self.config),
        )

        return {
            'answer': answer,
            'entities': entities,
            'document_ids': doc_ids,
            'documents': documents,
        }
