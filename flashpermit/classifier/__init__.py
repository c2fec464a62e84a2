from flashpermit.classifier.service import ClassifiedError, ErrorClassifier

__all__ = ['ErrorClassifier', 'ClassifiedError']
