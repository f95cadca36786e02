# Services are imported by module where needed, e.g.:
# from services.import_pipeline import ImportPipeline
# from services.chat_csv_parser import ChatCsvParser

__all__ = []
