'''
Segmentation decoding, object extraction and descriptors.
'''
