"""
Text Pipeline and Job Engine.

    - vocab.py: Kokoro symbol vocabulary
    - normalizer.py: Text normalization ahead of phonemization
    - phonemizer.py: espeak-ng bridge
    - postprocess.py: Punctuation restoration and phoneme refinement
    - tokenizer.py: Token mapping and segmentation
    - pipeline.py: The stages composed
    - jobs.py: Ordered, cancellable synthesis jobs
    - engine.py: Single-dispatcher job scheduler
    - model.py: Inference backends (ONNX Runtime)
"""
