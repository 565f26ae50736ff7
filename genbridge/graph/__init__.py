"""
Workflow graphs, image upload and job polling for the local graph executor.
"""

from genbridge.graph.workflow_builder import GraphWorkflowBuilder
from genbridge.graph.uploader import BinaryUploader
from genbridge.graph.poller import JobPoller
