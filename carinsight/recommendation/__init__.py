from carinsight.recommendation.ranker import Ranker, RecommendationRanker

__all__ = ["Ranker", "RecommendationRanker"]
