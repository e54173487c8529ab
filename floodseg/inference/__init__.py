from floodseg.inference.predict import load_model, predict_probabilities

__all__ = ["load_model", "predict_probabilities"]
