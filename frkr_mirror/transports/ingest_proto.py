"""
Message classes and service stubs for the ingestion gRPC service.

Compiled at import time from ``frkr_mirror/protos/ingest.proto`` with
``grpc.protos_and_services`` (needs ``grpcio-tools``), so the .proto file is
the only schema source. The path is resolved against ``sys.path``, where the
installed package (or an editable checkout's root) lives.
"""

import grpc

PROTO_PATH = "frkr_mirror/protos/ingest.proto"

ingest_pb2, ingest_pb2_grpc = grpc.protos_and_services(PROTO_PATH)

MirroredRequest = ingest_pb2.MirroredRequest
IngestRequest = ingest_pb2.IngestRequest
IngestResponse = ingest_pb2.IngestResponse

IngestServiceStub = ingest_pb2_grpc.IngestServiceStub
IngestServiceServicer = ingest_pb2_grpc.IngestServiceServicer
add_IngestServiceServicer_to_server = ingest_pb2_grpc.add_IngestServiceServicer_to_server
